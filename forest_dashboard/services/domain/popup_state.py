"""
Popup presentation state.
"""
from typing import Optional
import logging

from forest_dashboard.domain.models import (
    ErrorResult,
    GeoPoint,
    LoadingResult,
    QueryResult,
)
from forest_dashboard.services.domain.timers import TransientSlot

logger = logging.getLogger(__name__)


class PopupState:
    """
    The single live popup.

    Showing anything replaces the previous content and cancels a pending
    auto-close, so an old error timer never closes a newer result.
    """

    def __init__(self, error_duration: float = 2.0):
        self.error_duration = error_duration
        self.result: Optional[QueryResult] = None
        self.position: Optional[GeoPoint] = None
        self._auto_close = TransientSlot("popup")

    @property
    def visible(self) -> bool:
        return self.result is not None

    @property
    def result_type(self) -> Optional[str]:
        return self.result.type if self.result is not None else None

    def show(self, result: QueryResult, position: Optional[GeoPoint] = None) -> None:
        self._auto_close.cancel()
        self.result = result
        self.position = position

    def show_loading(self, position: Optional[GeoPoint] = None) -> None:
        self.show(LoadingResult(), position)

    def show_error(self, message: str, position: Optional[GeoPoint] = None) -> None:
        """Show an error that closes itself after the configured duration."""
        self.show(ErrorResult(message=message), position)
        self._auto_close.schedule(self.error_duration, self.close)

    def close(self) -> None:
        self._auto_close.cancel()
        self.result = None
        self.position = None

    def snapshot(self) -> dict:
        return {
            "visible": self.visible,
            "position": self.position.model_dump() if self.position else None,
            "result": self.result.model_dump() if self.result is not None else None,
        }
