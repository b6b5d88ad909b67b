"""
CampusHub — Registration, Attendance & Gamification Engine
============================================================
Backend core for a student-organization community platform: members
register for capacity-limited events, get checked in, complete departmental
tasks, and climb a points-driven leaderboard.

Package layout::

    campushub/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level formula, role sets
    ├── errors.py          # Typed business / not-found / consistency errors
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings seeder
    ├── engine/
    │   ├── points.py      # Pure level / balance arithmetic
    │   ├── capabilities.py # Actor + capability checks
    │   ├── lifecycle.py   # Registration & task transition tables
    │   └── cache.py       # In-memory settings cache
    ├── services/
    │   ├── capacity_service.py      # Atomic seat reserve / release
    │   ├── registration_service.py  # Registration state machine
    │   ├── points_service.py        # Points ledger writes, badges
    │   ├── task_service.py          # Task lifecycle
    │   ├── leaderboard_service.py   # Rank / top-N queries
    │   ├── event_service.py         # Event / member read models, stats
    │   ├── admin_service.py         # Audit-logged catalogue mutations
    │   ├── settings_service.py      # Settings CRUD
    │   ├── reconciliation_service.py # Occupied-seat drift repair
    │   └── notification_service.py  # Fire-and-forget notifier seam
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → Actor, DB dependencies
        ├── errors.py      # Domain error → HTTP mapping
        └── routes/        # Registrations, tasks, members, events, admin
"""

__version__ = "0.1.0"
