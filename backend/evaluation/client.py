"""API client and client-side state stores.

`EvaluationClient` is a thin httpx wrapper that unwraps the response
envelope. `SubjectStore` and `CompetencyStore` keep a local copy of one
collection, apply each successful mutation to it in place (no re-fetch)
and report the outcome through a `Notifier`. A failed mutation leaves the
local list exactly as it was, notifies the error and re-raises it.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from . import validation
from .errors import AppError
from .schemas import Envelope

logger = logging.getLogger("evaluation.client")

GENERIC_ERROR = "Something went wrong. Please try again."
NETWORK_ERROR = "Network error. Please check your connection."

SUBJECTS = "/subjects"
COMPETENCIES = "/competencies"


class ApiError(Exception):
    """A failed API call: non-success envelope or transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[list] = None):
        self.message = message
        self.status_code = status_code
        self.errors = errors or []
        super().__init__(message)


class EvaluationClient:
    """Call the evaluation API and return the envelope's `data`.

    Pass `base_url` to have the client own an `httpx.Client`, or hand in an
    existing one (any `httpx.Client`, including FastAPI's `TestClient`).
    """

    def __init__(self, base_url: Optional[str] = None, http_client: Optional[httpx.Client] = None, timeout: float = 10.0):
        if http_client is None and base_url is None:
            raise ValueError("base_url or http_client is required")
        self._owns_client = http_client is None
        self.http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        try:
            r = self.http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("request %s %s failed: %s", method, path, exc)
            raise ApiError(NETWORK_ERROR) from exc
        try:
            envelope = Envelope[Any].model_validate(r.json())
        except ValueError as exc:
            raise ApiError(GENERIC_ERROR, r.status_code) from exc
        if not envelope.success or r.is_error:
            errors = [e.model_dump() for e in envelope.errors or []]
            raise ApiError(envelope.message or GENERIC_ERROR, r.status_code, errors)
        return envelope.data

    def health(self) -> dict:
        return self._request("GET", "/health")

    def list_subjects(self) -> List[dict]:
        return self._request("GET", SUBJECTS)

    def get_subject(self, subject_id: int) -> dict:
        return self._request("GET", f"{SUBJECTS}/{subject_id}")

    def create_subject(self, data: dict) -> dict:
        return self._request("POST", SUBJECTS, data)

    def update_subject(self, subject_id: int, data: dict) -> dict:
        return self._request("PUT", f"{SUBJECTS}/{subject_id}", data)

    def delete_subject(self, subject_id: int) -> None:
        self._request("DELETE", f"{SUBJECTS}/{subject_id}")

    def list_competencies(self) -> List[dict]:
        return self._request("GET", COMPETENCIES)

    def list_competencies_by_subject(self, subject_id: int) -> List[dict]:
        return self._request("GET", f"{COMPETENCIES}/subject/{subject_id}")

    def get_competency(self, competency_id: int) -> dict:
        return self._request("GET", f"{COMPETENCIES}/{competency_id}")

    def create_competency(self, data: dict) -> dict:
        return self._request("POST", COMPETENCIES, data)

    def update_competency(self, competency_id: int, data: dict) -> dict:
        return self._request("PUT", f"{COMPETENCIES}/{competency_id}", data)

    def delete_competency(self, competency_id: int) -> None:
        self._request("DELETE", f"{COMPETENCIES}/{competency_id}")


class Notifier:
    """Collects transient success/error notifications.

    `on_notify`, when given, receives `(level, message)` for each one,
    e.g. to print or forward to a UI toast.
    """

    def __init__(self, on_notify: Optional[Callable[[str, str], None]] = None):
        self.history: List[Dict[str, str]] = []
        self.on_notify = on_notify

    def success(self, message: str) -> None:
        self._push("success", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def _push(self, level: str, message: str) -> None:
        self.history.append({"level": level, "message": message})
        if self.on_notify is not None:
            self.on_notify(level, message)

    @property
    def last(self) -> Optional[Dict[str, str]]:
        return self.history[-1] if self.history else None


def _error_message(exc: Exception) -> str:
    if isinstance(exc, (ApiError, AppError)):
        return exc.message or GENERIC_ERROR
    return GENERIC_ERROR


class _Store:
    """State shared by the collection stores: items, loading, last error."""

    def __init__(self, client: EvaluationClient, notifier: Optional[Notifier] = None):
        self.client = client
        self.notifier = notifier or Notifier()
        self.items: List[dict] = []
        self.loading = False
        self.error: Optional[str] = None

    def _load(self, fetch: Callable[[], List[dict]]) -> List[dict]:
        self.loading = True
        self.error = None
        try:
            self.items = fetch()
        except Exception as exc:
            self.error = _error_message(exc)
            self.notifier.error(self.error)
            raise
        finally:
            self.loading = False
        return self.items

    def _mutate(self, call: Callable[[], Any], apply: Callable[[Any], None], message: str) -> Any:
        try:
            result = call()
        except Exception as exc:
            self.notifier.error(_error_message(exc))
            raise
        apply(result)
        self.notifier.success(message)
        return result

    def _replace(self, item_id: int, item: dict) -> None:
        self.items = [item if i["id"] == item_id else i for i in self.items]

    def _remove(self, item_id: int) -> None:
        self.items = [i for i in self.items if i["id"] != item_id]


class SubjectStore(_Store):
    """Local list of subjects, newest first, plus per-subject competency counts."""

    def __init__(self, client: EvaluationClient, notifier: Optional[Notifier] = None):
        super().__init__(client, notifier)
        self.competency_counts: Dict[int, int] = {}

    def fetch(self) -> List[dict]:
        return self._load(self.client.list_subjects)

    def fetch_competency_counts(self) -> Dict[int, int]:
        """One lookup per subject; a failed lookup counts as zero."""
        counts = {}
        for subject in self.items:
            try:
                counts[subject["id"]] = len(self.client.list_competencies_by_subject(subject["id"]))
            except ApiError:
                counts[subject["id"]] = 0
        self.competency_counts = counts
        return counts

    def create(self, data: dict) -> dict:
        def call():
            payload = validation.validate("subject.create", data).model_dump(exclude_none=True)
            return self.client.create_subject(payload)

        def apply(subject):
            self.items = [subject] + self.items

        return self._mutate(call, apply, "Subject created successfully")

    def update(self, subject_id: int, data: dict) -> dict:
        def call():
            payload = validation.validate("subject.update", data).changes()
            validation.validate_id(subject_id)
            return self.client.update_subject(subject_id, payload)

        return self._mutate(call, lambda s: self._replace(subject_id, s), "Subject updated successfully")

    def delete(self, subject_id: int) -> None:
        def call():
            validation.validate_id(subject_id)
            return self.client.delete_subject(subject_id)

        def apply(_):
            self._remove(subject_id)
            self.competency_counts.pop(subject_id, None)

        self._mutate(call, apply, "Subject deleted successfully")


class CompetencyStore(_Store):
    """Local list of one subject's competencies."""

    def __init__(self, client: EvaluationClient, subject_id: Optional[int], notifier: Optional[Notifier] = None):
        super().__init__(client, notifier)
        self.subject_id = subject_id

    def fetch(self) -> List[dict]:
        if not self.subject_id:
            return self.items
        return self._load(lambda: self.client.list_competencies_by_subject(self.subject_id))

    def create(self, data: dict) -> dict:
        def call():
            payload = validation.validate("competency.create", data).model_dump(by_alias=True)
            return self.client.create_competency(payload)

        def apply(competency):
            self.items = self.items + [competency]

        return self._mutate(call, apply, "Competency created successfully")

    def update(self, competency_id: int, data: dict) -> dict:
        def call():
            payload = validation.validate("competency.update", data).changes()
            validation.validate_id(competency_id)
            return self.client.update_competency(competency_id, payload)

        return self._mutate(call, lambda c: self._replace(competency_id, c), "Competency updated successfully")

    def delete(self, competency_id: int) -> None:
        def call():
            validation.validate_id(competency_id)
            return self.client.delete_competency(competency_id)

        self._mutate(call, lambda _: self._remove(competency_id), "Competency deleted successfully")
