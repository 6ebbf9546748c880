"""
Rollcall — Faction Roster Composition & Membership Sync
=========================================================
Aggregates faction membership from the game-world API, the forum API and
internal assignment records, renders filtered roster views, and reconciles
unit/detail memberships against forum groups.

Package layout::

    rollcall/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Name normalization + default thresholds
    ├── errors.py          # Exception taxonomy
    ├── bootstrap.py       # Wiring: env, logging, engine, services
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── clients/
    │   ├── faction_api.py # Game-world faction roster + ABAS
    │   └── forum_api.py   # Forum groups + users
    ├── engine/             # Pure logic, no I/O
    │   ├── members.py     # Character / Member value types
    │   ├── freshness.py   # Cache staleness policy
    │   ├── filters.py     # Roster filter rules
    │   ├── sections.py    # Section auto-classification
    │   ├── alternatives.py # Primary / alternative characters
    │   ├── standards.py   # ABAS standards
    │   └── sync_diff.py   # Forum → membership diff
    └── services/
        ├── cache_store.py      # Cache tables get/upsert
        ├── access.py           # Authorization gate
        ├── roster_service.py   # Aggregator + roster view
        ├── membership_service.py # Unit/detail memberships
        ├── sync_service.py     # Sync preview / apply / exclusions
        ├── section_service.py  # Section persistence
        └── snapshot_service.py # Roster snapshots
"""

__version__ = "0.1.0"
