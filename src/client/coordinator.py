"""
Capture-and-submit coordinator.

Injects a signature surface into an embedded HubSpot form, gates the form's
submission on a non-empty signature, uploads the signature before letting the
form submit, and after the platform's post-submit reload hands the carried-over
form identifier to the finalize endpoint.

Per page load:

    idle -> capturing -> uploading -> awaiting-resubmit
         -> (reload) -> watching-for-identifier -> finalizing -> done | error

Every callback of the form library is a named transition handler below.
"""

import json
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional

from .capabilities import (
    CaptureSurface,
    CaptureSurfaceFactory,
    DocumentQuery,
    EmbeddedFormAccessor,
    FormLibrary,
    HostPage,
    LoggingHostPage,
)
from .carrier import Carrier, MemoryCarrier
from .scheduler import Scheduler, ThreadingScheduler, TimerHandle
from .transport import OrchestratorClient, TransportError, RequestRejectedError
from util.logging import logger

FORM_DATA_KEY = "hs_signature_form_data"
REFERENCE_KEY = "hs_signature_reference"

EMPTY_SIGNATURE_MESSAGE = "Please provide your signature before submitting."
UPLOAD_REJECTED_MESSAGE = "Upload failed. Please try again."
UPLOAD_ERROR_MESSAGE = "Upload error. Please try again."
PROCESSING_FAILED_MESSAGE = "Processing failed. Please try again."
SUBMISSION_FAILED_MESSAGE = "Submission failed. Please try again."
BUSY_MESSAGE = "Your signature is already being processed."

SIGNATURE_PAD_ID = "signature-pad"
CLEAR_BUTTON_ID = "clear-signature"
ERROR_ID = "signature-error"
FORM_SELECTOR = ".hs-form form"
FIELD_CONTAINER_SELECTOR = ".hs-form-field"


class CoordinatorState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    UPLOADING = "uploading"
    AWAITING_RESUBMIT = "awaiting-resubmit"
    WATCHING = "watching-for-identifier"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    CoordinatorState.IDLE: {CoordinatorState.CAPTURING, CoordinatorState.WATCHING},
    CoordinatorState.CAPTURING: {CoordinatorState.UPLOADING},
    CoordinatorState.UPLOADING: {CoordinatorState.AWAITING_RESUBMIT, CoordinatorState.CAPTURING},
    # Redrawing before the platform accepts the resubmit invalidates the upload
    CoordinatorState.AWAITING_RESUBMIT: {CoordinatorState.WATCHING, CoordinatorState.CAPTURING},
    # A pending cycle that never finalizes is superseded by a new upload
    CoordinatorState.WATCHING: {CoordinatorState.FINALIZING, CoordinatorState.UPLOADING},
    CoordinatorState.FINALIZING: {CoordinatorState.DONE, CoordinatorState.ERROR},
    CoordinatorState.DONE: set(),
    CoordinatorState.ERROR: set(),
}


class InvalidTransition(Exception):
    """A handler tried to move the coordinator along an edge that does not exist."""
    pass


@dataclass
class CoordinatorConfig:
    """Coordinator options. portal_id and form_id are required."""
    portal_id: str = ""
    form_id: str = ""
    region: str = "na1"
    target: str = "#hubspot-form-container"

    # Server endpoints
    endpoint_url: str = "http://localhost:8000"
    store_path: str = "/signature/upload"
    finalize_path: str = "/signature/process"

    # Field configuration
    signature_field_name: str = "signature_required_check"
    signature_field_value: str = "signatured"
    placeholder_selector: str = ".hs-richtext"

    # Canvas settings
    canvas_width: int = 500
    canvas_height: int = 200

    # UI settings
    show_clear_button: bool = True
    auto_hide_field: bool = True

    # Timing (seconds)
    settle_delay: float = 2.5
    field_hide_delay: float = 0.5
    resubmit_delay: float = 0.3
    poll_interval: float = 2.0
    success_display: float = 2.5

    # Carrier scope
    carrier_max_age: float = 3600
    carrier_path: str = "/"

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "CoordinatorConfig":
        """Build from a dict of named options; unknown names are ignored."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            logger.warning(f"Ignoring unknown coordinator options: {unknown}")
        return cls(**{k: v for k, v in options.items() if k in known})


def extract_embed_form_id(data: Dict[str, Any]) -> str:
    """Pull originalEmbedContext.formId out of a form-submitted payload."""
    submission_values = (data or {}).get("submissionValues") or {}
    raw_context = submission_values.get("hs_context") or "{}"
    try:
        hs_context = json.loads(raw_context) if isinstance(raw_context, str) else raw_context
    except ValueError:
        return ""
    if not isinstance(hs_context, dict):
        return ""
    embed_context = hs_context.get("originalEmbedContext") or {}
    return str(embed_context.get("formId") or "")


def parse_carried_form_id(value: str) -> str:
    """Carrier values are either JSON `{"formId": ...}` or the bare id."""
    try:
        decoded = json.loads(value)
    except ValueError:
        return value
    if isinstance(decoded, dict):
        return str(decoded.get("formId") or "")
    return value


def signature_markup(width: int, height: int, show_clear_button: bool) -> str:
    clear_button = f'<button type="button" id="{CLEAR_BUTTON_ID}">Clear</button>' if show_clear_button else ""
    return (
        '<div class="signature-container">'
        '<label><strong>Signature</strong></label>'
        f'<canvas id="{SIGNATURE_PAD_ID}" width="{width}" height="{height}"></canvas>'
        f'{clear_button}'
        f'<p id="{ERROR_ID}" style="display: none;">Please sign before submitting.</p>'
        '</div>'
    )


class SignatureCoordinator:
    """Client-side coordinator for one page load."""

    def __init__(
        self,
        form_library: FormLibrary = None,
        dom: DocumentQuery = None,
        surface_factory: CaptureSurfaceFactory = None,
        transport: OrchestratorClient = None,
        carrier: Carrier = None,
        scheduler: Scheduler = None,
        host_page: HostPage = None,
    ):
        self.form_library = form_library
        self.dom = dom
        self.surface_factory = surface_factory
        self.transport = transport
        self.carrier = carrier
        self.scheduler = scheduler
        self.host_page = host_page

        self.config: Optional[CoordinatorConfig] = None
        self.state = CoordinatorState.IDLE
        self.initialized = False

        self.signature_pad: Optional[CaptureSurface] = None
        self.signature_url = ""
        self.signature_field: Optional[Any] = None
        self._accessor: Optional[EmbeddedFormAccessor] = None
        self._watch_handle: Optional[TimerHandle] = None

    # ------------------------------------------------------------------
    # State machine

    def _can_transition(self, to_state: CoordinatorState) -> bool:
        return to_state in ALLOWED_TRANSITIONS[self.state]

    def _transition(self, to_state: CoordinatorState, trigger: str) -> None:
        if not self._can_transition(to_state):
            raise InvalidTransition(f"{self.state.value} -> {to_state.value} on {trigger}")
        logger.log_coordinator_transition(self.state.value, to_state.value, trigger)
        self.state = to_state

    # ------------------------------------------------------------------
    # Initialization

    def _missing_dependencies(self, config: CoordinatorConfig) -> list:
        missing = []
        if self.surface_factory is None:
            missing.append("signature capture library")
        if self.dom is None:
            missing.append("document query helper")
        if self.form_library is None:
            missing.append("HubSpot forms library")
        if not config.portal_id or not config.form_id:
            missing.append("Portal ID and Form ID")
        return missing

    def initialize(self, configuration) -> bool:
        """
        Validate capabilities and identifiers, render the form and start the
        post-reload watcher. Returns False, with nothing set up, when anything
        required is missing.
        """
        if self.initialized:
            logger.warning("Coordinator already initialized")
            return True

        config = configuration if isinstance(configuration, CoordinatorConfig) else CoordinatorConfig.from_dict(configuration or {})

        missing = self._missing_dependencies(config)
        if missing:
            logger.error(f"Missing dependencies: {', '.join(missing)}")
            return False

        transport = self.transport or OrchestratorClient(
            config.endpoint_url, store_path=config.store_path, finalize_path=config.finalize_path
        )
        carrier = self.carrier or MemoryCarrier()
        scheduler = self.scheduler or ThreadingScheduler()
        host_page = self.host_page or LoggingHostPage()

        try:
            self.form_library.create(
                {
                    "portalId": config.portal_id,
                    "formId": config.form_id,
                    "region": config.region,
                    "target": config.target,
                },
                on_form_ready=self.on_form_ready,
                on_before_submit=self.on_before_submit,
                on_form_submitted=self.on_form_submitted,
            )
        except Exception as e:
            logger.error(f"Form library failed to create the form: {e}")
            return False

        self.config = config
        self.transport = transport
        self.carrier = carrier
        self.scheduler = scheduler
        self.host_page = host_page
        self.initialized = True

        pending_reference = self.carrier.get(REFERENCE_KEY, config.carrier_path)
        if pending_reference:
            self.signature_url = pending_reference
            self._transition(CoordinatorState.WATCHING, "pending-submission-found")

        self.start_finalize_watcher()
        logger.info("Signature coordinator initialized")
        return True

    # ------------------------------------------------------------------
    # Form ready: inject the capture surface

    def on_form_ready(self) -> None:
        """Form library callback: wait for the form to settle, then inject."""
        logger.info("Form loaded")
        self.scheduler.call_later(self.config.settle_delay, self.inject_signature_pad)

    def inject_signature_pad(self) -> bool:
        """Replace the placeholder with the capture surface and wire the marker field."""
        accessor = self.dom.embedded_form(self.config.target)
        if accessor is None:
            logger.error("Form iframe not found")
            return False

        placeholder = accessor.query(self.config.placeholder_selector)
        if placeholder is None:
            logger.error("Rich text field not found - add one to your HubSpot form")
            return False

        field = accessor.query(f'input[name="{self.config.signature_field_name}"]')
        if field is None:
            logger.error(f'Field "{self.config.signature_field_name}" not found')
            return False

        accessor.replace_contents(
            placeholder,
            signature_markup(self.config.canvas_width, self.config.canvas_height, self.config.show_clear_button),
        )

        canvas = accessor.query(f"#{SIGNATURE_PAD_ID}")
        if canvas is None:
            logger.error("Canvas not found")
            return False

        self._accessor = accessor
        self.signature_field = field
        self.signature_pad = self.surface_factory.create(
            canvas,
            {
                "width": self.config.canvas_width,
                "height": self.config.canvas_height,
                "min_width": 0.5,
                "max_width": 2.5,
            },
        )
        self.signature_pad.add_stroke_end_listener(self.on_stroke_end)

        if self.config.show_clear_button:
            clear_button = accessor.query(f"#{CLEAR_BUTTON_ID}")
            if clear_button is not None:
                accessor.on_click(clear_button, self.clear_signature)

        if self.config.auto_hide_field:
            self.scheduler.call_later(self.config.field_hide_delay, self._hide_signature_field)

        if self._can_transition(CoordinatorState.CAPTURING):
            self._transition(CoordinatorState.CAPTURING, "surface-injected")

        logger.info("Signature pad injected")
        return True

    def _hide_signature_field(self) -> None:
        if self._accessor is None or self.signature_field is None:
            return
        container = self._accessor.closest(self.signature_field, FIELD_CONTAINER_SELECTOR)
        if container is not None:
            self._accessor.set_visible(container, False)

    def on_stroke_end(self) -> None:
        self._discard_pending_upload("redrawn")
        self.update_signature_field()
        self.hide_error()

    def _discard_pending_upload(self, trigger: str) -> None:
        """Drop an uploaded-but-not-yet-submitted reference once the drawing changes."""
        if self.state != CoordinatorState.AWAITING_RESUBMIT:
            return
        self.signature_url = ""
        self.carrier.clear(REFERENCE_KEY, self.config.carrier_path)
        self._transition(CoordinatorState.CAPTURING, trigger)

    def update_signature_field(self) -> None:
        """Mirror capture state into the marker field and let the form re-validate."""
        if self.signature_field is None or self._accessor is None:
            return

        has_signature = not self.is_empty()
        self._accessor.set_value(self.signature_field, self.config.signature_field_value if has_signature else "")

        if has_signature:
            self._accessor.remove_classes(self.signature_field, "invalid", "error")

        self._accessor.dispatch_event(self.signature_field, "input", bubbles=True)
        self._accessor.dispatch_event(self.signature_field, "change", bubbles=True)

    def clear_signature(self) -> None:
        if self.signature_pad is not None:
            self.signature_pad.clear()
            self._discard_pending_upload("cleared")
            self.update_signature_field()
            self.hide_error()

    # ------------------------------------------------------------------
    # Before submit: validate, upload, cancel

    def validate_signature(self) -> bool:
        if self.signature_pad is None or self.signature_pad.is_empty():
            self.show_error(EMPTY_SIGNATURE_MESSAGE)
            return False
        return True

    def on_before_submit(self) -> bool:
        """
        Form library callback. Returns False to cancel the submit.

        The only submit allowed through is the resubmission after a
        successful upload.
        """
        try:
            if not self.validate_signature():
                return False

            if self.state == CoordinatorState.AWAITING_RESUBMIT and self.signature_url:
                return True

            if not self._can_transition(CoordinatorState.UPLOADING):
                logger.warning(f"Submit ignored in state {self.state.value}")
                self.show_error(BUSY_MESSAGE)
                return False

            self.update_signature_field()
            self._transition(CoordinatorState.UPLOADING, "before-submit")
            self.scheduler.call_later(0, self.upload_signature)
        except Exception as e:
            logger.error(f"Submission handler failed: {e}")
            self.show_error(UPLOAD_ERROR_MESSAGE)

        # Real submission happens after the upload completes
        return False

    def upload_signature(self) -> None:
        """Send the signature to the store endpoint and resubmit on success."""
        if self.state != CoordinatorState.UPLOADING:
            return

        try:
            self._upload()
        except Exception as e:
            logger.error(f"Upload handler failed: {e}")
            if self.state == CoordinatorState.AWAITING_RESUBMIT:
                self._discard_pending_upload("upload-error")
            elif self.state == CoordinatorState.UPLOADING:
                self.signature_url = ""
                self._transition(CoordinatorState.CAPTURING, "upload-error")
            self.show_error(UPLOAD_ERROR_MESSAGE)

    def _upload(self) -> None:
        if self.signature_pad is None or self.signature_pad.is_empty():
            self._transition(CoordinatorState.CAPTURING, "upload-aborted")
            return

        data_url = self.signature_pad.to_data_url("image/png")

        try:
            reference = self.transport.store(data_url)
        except RequestRejectedError as e:
            logger.error(f"Upload failed: {e.message}")
            self._transition(CoordinatorState.CAPTURING, "upload-rejected")
            self.show_error(UPLOAD_REJECTED_MESSAGE)
            return
        except TransportError as e:
            logger.error(f"Upload error: {e}")
            self._transition(CoordinatorState.CAPTURING, "upload-error")
            self.show_error(UPLOAD_ERROR_MESSAGE)
            return

        self.signature_url = reference.get("file_path", "")
        if not self.signature_url:
            logger.error("Upload response carried no file reference")
            self._transition(CoordinatorState.CAPTURING, "upload-rejected")
            self.show_error(UPLOAD_REJECTED_MESSAGE)
            return

        self.carrier.put(REFERENCE_KEY, self.signature_url, self.config.carrier_max_age, self.config.carrier_path)
        self._transition(CoordinatorState.AWAITING_RESUBMIT, "upload-succeeded")
        logger.info("Upload successful")

        self.scheduler.call_later(self.config.resubmit_delay, self.resubmit_form)

    def resubmit_form(self) -> bool:
        """Trigger the embedded form's native submit."""
        if self.state != CoordinatorState.AWAITING_RESUBMIT:
            logger.info(f"Resubmit skipped in state {self.state.value}")
            return False
        accessor = self._accessor or self.dom.embedded_form(self.config.target)
        if accessor is None:
            logger.error("Form iframe not found for resubmission")
            return False
        return accessor.submit_form(FORM_SELECTOR)

    # ------------------------------------------------------------------
    # Form submitted: carry the identifier over the reload

    def on_form_submitted(self, form: Any, data: Dict[str, Any]) -> None:
        """Form library callback after the platform accepted the submission."""
        form_id = extract_embed_form_id(data)
        if not form_id:
            logger.warning("Submitted form carried no embed form id")
            return

        self.carrier.put(FORM_DATA_KEY, form_id, self.config.carrier_max_age, self.config.carrier_path)

        if self._can_transition(CoordinatorState.WATCHING):
            self._transition(CoordinatorState.WATCHING, "form-submitted")
        logger.info("Form submitted")

    # ------------------------------------------------------------------
    # Post-reload watcher and finalize

    def start_finalize_watcher(self) -> None:
        if self._watch_handle is not None:
            return
        self._watch_handle = self.scheduler.call_every(self.config.poll_interval, self.check_for_submission)

    def stop_finalize_watcher(self) -> None:
        self.scheduler.cancel(self._watch_handle)
        self._watch_handle = None

    def check_for_submission(self) -> bool:
        """
        One poll of the carrier. The value is consumed as soon as it is seen,
        so at most one finalize runs per submission.
        """
        value = self.carrier.consume(FORM_DATA_KEY, self.config.carrier_path)
        if not value:
            return False

        self.stop_finalize_watcher()

        form_id = parse_carried_form_id(value)
        carried_reference = self.carrier.consume(REFERENCE_KEY, self.config.carrier_path)
        reference = self.signature_url or carried_reference or ""

        if not form_id:
            logger.warning("Carried form data held no form id")
            return False

        if self.state != CoordinatorState.WATCHING or not reference:
            logger.warning(f"Form id {form_id} found without a pending signature (state {self.state.value})")
            return False

        self.process_submission(form_id, reference)
        return True

    def process_submission(self, form_id: str, reference: str) -> None:
        self._transition(CoordinatorState.FINALIZING, "identifier-found")
        logger.info("Processing submission...")
        self.host_page.show_loading()

        try:
            self.transport.finalize(form_id, reference)
        except RequestRejectedError as e:
            logger.error(f"Processing failed: {e.message}")
            self.host_page.hide_loading()
            self._transition(CoordinatorState.ERROR, "finalize-rejected")
            self.host_page.alert(PROCESSING_FAILED_MESSAGE)
            return
        except TransportError as e:
            logger.error(f"Processing error: {e}")
            self.host_page.hide_loading()
            self._transition(CoordinatorState.ERROR, "finalize-error")
            self.host_page.alert(SUBMISSION_FAILED_MESSAGE)
            return

        self.host_page.hide_loading()
        self._transition(CoordinatorState.DONE, "finalize-succeeded")
        self.host_page.show_success()
        self.scheduler.call_later(self.config.success_display, self.host_page.hide_success)

        if self.signature_pad is not None:
            self.signature_pad.clear()
        self.signature_url = ""

    # ------------------------------------------------------------------
    # Inline error

    def _error_element(self):
        accessor = self._accessor
        if accessor is None and self.dom is not None and self.config is not None:
            accessor = self.dom.embedded_form(self.config.target)
        if accessor is None:
            return None, None
        return accessor, accessor.query(f"#{ERROR_ID}")

    def show_error(self, message: str) -> None:
        accessor, element = self._error_element()
        if element is None:
            logger.warning(f"Signature error (no error element): {message}")
            return
        accessor.set_text(element, message)
        accessor.set_visible(element, True)

    def hide_error(self) -> None:
        accessor, element = self._error_element()
        if element is not None:
            accessor.set_visible(element, False)

    # ------------------------------------------------------------------
    # Public API

    def get_signature_data_url(self) -> Optional[str]:
        return self.signature_pad.to_data_url() if self.signature_pad is not None else None

    def is_empty(self) -> bool:
        return self.signature_pad.is_empty() if self.signature_pad is not None else True

    def get_signature_url(self) -> str:
        return self.signature_url

    def destroy(self) -> None:
        if self.scheduler is not None:
            self.stop_finalize_watcher()
        if self.signature_pad is not None:
            self.signature_pad.clear()
        self.signature_pad = None
        self.signature_url = ""
        self.signature_field = None
        self._accessor = None
