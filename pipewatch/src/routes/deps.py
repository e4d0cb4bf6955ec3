from fastapi import Request, WebSocket

from pipewatch.src.services.engine import ReconciliationEngine

def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine

def get_websocket_engine(websocket: WebSocket) -> ReconciliationEngine:
    return websocket.app.state.engine
