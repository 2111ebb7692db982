"""Record store and audit log interfaces with memory and SQLAlchemy backends."""
