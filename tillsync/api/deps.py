from fastapi import Request

from tillsync.domain.sync.engine import ReconciliationEngine


def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine
