"""
Catechesis — Moderation, Quality & Community Engine
=====================================================
Crowd-sourced explanations attached to a catechism Q&A corpus move through
a moderated lifecycle.  Votes, flags and reviews drive a derived quality
score; every transition fans out into gamification (points, achievements,
badges, leaderboards) and a nightly analytics rollup.

Package layout::

    catechesis/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Roles, point values, badge codes
    ├── errors.py          # Error taxonomy (validation, not found, ...)
    ├── collaborators.py   # Content / file catalog interfaces + Actor
    ├── scheduler.py       # Nightly snapshot + leaderboard loops
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Badge + achievement catalog seeder
    ├── engine/
    │   ├── quality.py     # Quality score formula
    │   ├── consensus.py   # Review majority + score averages
    │   ├── lifecycle.py   # Submission status state machine
    │   ├── achievements.py # Metric map + threshold crossing
    │   ├── periods.py     # Leaderboard windows + period keys
    │   └── events.py      # Domain events + dispatcher
    ├── services/
    │   ├── user_service.py        # User mirror + profiles lookups
    │   ├── explanation_service.py # Intake, lifecycle, queue, deletion
    │   ├── vote_service.py        # Vote ledger
    │   ├── flag_service.py        # Flag ledger
    │   ├── review_service.py      # Review ledger + consensus
    │   ├── community_service.py   # Activity, achievements, badges, leaderboards
    │   ├── community_events.py    # Event handlers → community_service
    │   └── analytics_service.py   # Snapshots, trends, dashboard
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / dispatcher / actor dependencies
        └── routes/        # Explanations, community, analytics endpoints
"""

__version__ = "0.1.0"
