# Marks `app.deps` as a real Python package so imports like
# `from app.deps.auth import require_user` work reliably.
