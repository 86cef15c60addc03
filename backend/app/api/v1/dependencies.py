from fastapi import Request
from app.services.call_service import CallService

def call_service(request: Request) -> CallService:
    # built once in the app lifespan, shared by every request
    return request.app.state.call_service
