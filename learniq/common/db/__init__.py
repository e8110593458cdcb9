"""Database access helpers."""

from learniq.common.db.session import (
    init_engine,
    get_engine,
    get_session,
    get_session_factory,
    dispose_engine,
)
from learniq.common.db.statements import insert_if_absent
