"""Service dependencies resolved from app.state so tests can swap them."""

from fastapi import Request

from expense_tracker.services.ai_base import AIService
from expense_tracker.services.file_service import FileService


def get_ai_service(request: Request) -> AIService:
    return request.app.state.ai_service


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service
