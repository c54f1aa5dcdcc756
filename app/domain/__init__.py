"""
app/domain package marker.

Import from the submodules directly (``app.domain.periods``,
``app.domain.aggregates``, ``app.domain.records``, ``app.domain.errors``);
the validators import ``app.domain.errors`` while ``app.domain.periods``
imports the validators.
"""
