"""
Capability interfaces the coordinator drives.

The coordinator never touches a document directly: the embedded form, the
capture widget, the form-rendering library and the host page are all reached
through these interfaces so each target platform can plug in its own
implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from util.logging import logger


class EmbeddedFormAccessor(ABC):
    """Operations on the document of the embedded (foreign) form."""

    @abstractmethod
    def query(self, selector: str) -> Optional[Any]:
        """Return the first element matching `selector`, or None."""
        pass

    @abstractmethod
    def replace_contents(self, element: Any, markup: str) -> None:
        """Replace the children of `element` with `markup`."""
        pass

    @abstractmethod
    def closest(self, element: Any, selector: str) -> Optional[Any]:
        """Return the nearest ancestor of `element` matching `selector`."""
        pass

    @abstractmethod
    def get_value(self, element: Any) -> str:
        pass

    @abstractmethod
    def set_value(self, element: Any, value: str) -> None:
        pass

    @abstractmethod
    def remove_classes(self, element: Any, *class_names: str) -> None:
        pass

    @abstractmethod
    def set_text(self, element: Any, text: str) -> None:
        pass

    @abstractmethod
    def set_visible(self, element: Any, visible: bool) -> None:
        pass

    @abstractmethod
    def dispatch_event(self, element: Any, event_type: str, bubbles: bool = True) -> None:
        """Dispatch a synthetic event so the form's own validation observes it."""
        pass

    @abstractmethod
    def on_click(self, element: Any, handler: Callable[[], None]) -> None:
        pass

    @abstractmethod
    def submit_form(self, selector: str) -> bool:
        """Trigger the native submit of the matching form, bypassing submit hooks."""
        pass


class DocumentQuery(ABC):
    """Host-page query helper: locates the embedded form under a mount point."""

    @abstractmethod
    def embedded_form(self, target: str) -> Optional[EmbeddedFormAccessor]:
        """Return an accessor for the form embedded under `target`, or None if not loaded."""
        pass


class CaptureSurface(ABC):
    """A signature widget: produces a bitmap, can be cleared, reports emptiness."""

    @abstractmethod
    def is_empty(self) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def to_data_url(self, mime_type: str = "image/png") -> str:
        """Serialize the bitmap as a `data:<mime>;base64,...` payload."""
        pass

    @abstractmethod
    def add_stroke_end_listener(self, listener: Callable[[], None]) -> None:
        pass


class CaptureSurfaceFactory(ABC):
    """Builds a capture surface bound to a canvas element."""

    @abstractmethod
    def create(self, canvas: Any, options: Dict[str, Any]) -> CaptureSurface:
        pass


class FormLibrary(ABC):
    """The third-party library that renders the embedded form."""

    @abstractmethod
    def create(
        self,
        options: Dict[str, Any],
        on_form_ready: Callable[[], None],
        on_before_submit: Callable[[], bool],
        on_form_submitted: Callable[[Any, Dict[str, Any]], None],
    ) -> None:
        """
        Render the form under `options['target']`.

        `on_before_submit` returns False to cancel the pending submit.
        """
        pass


class HostPage(ABC):
    """Indicators on the host page around the finalize call."""

    @abstractmethod
    def show_loading(self) -> None:
        """Show a blocking loading indicator."""
        pass

    @abstractmethod
    def hide_loading(self) -> None:
        pass

    @abstractmethod
    def show_success(self) -> None:
        pass

    @abstractmethod
    def hide_success(self) -> None:
        pass

    @abstractmethod
    def alert(self, message: str) -> None:
        """Show a blocking alert."""
        pass


class LoggingHostPage(HostPage):
    """Host page without indicators; reports through the log only."""

    def show_loading(self) -> None:
        logger.debug("Loading indicator shown")

    def hide_loading(self) -> None:
        logger.debug("Loading indicator hidden")

    def show_success(self) -> None:
        logger.info("Signature processed successfully")

    def hide_success(self) -> None:
        pass

    def alert(self, message: str) -> None:
        logger.warning(f"Alert: {message}")
