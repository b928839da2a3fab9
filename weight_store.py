"""
Clients for the weight-persistence service.

Store implementations raise WeightStoreError; fetch_weights/save_weights turn
that into Ok/Err after a bounded number of retries.
"""
import json
import logging
import os
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from ai_agent import DEFAULT_WEIGHTS, validate_weights

logger = logging.getLogger(__name__)

WEIGHTS_FILE = "ai-weights.json"


class WeightStoreError(Exception):
    """Raised when weights cannot be read from or written to a store."""


@dataclass(frozen=True)
class WeightRecord:
    weights: Dict[str, float]
    generation: int = 0


@dataclass(frozen=True)
class Ok:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok, Err]


def default_record() -> WeightRecord:
    return WeightRecord(dict(DEFAULT_WEIGHTS), 0)


def parse_record(data: Any) -> WeightRecord:
    if not isinstance(data, dict):
        raise WeightStoreError(f"expected an object, got {type(data).__name__}")
    if "weights" not in data or "generation" not in data:
        raise WeightStoreError("payload needs both 'weights' and 'generation'")
    generation = data["generation"]
    if isinstance(generation, bool) or not isinstance(generation, int) or generation < 0:
        raise WeightStoreError(f"bad generation: {generation!r}")
    try:
        weights = validate_weights(data["weights"])
    except ValueError as e:
        raise WeightStoreError(str(e)) from e
    return WeightRecord(weights, generation)


def encode_record(weights: Optional[Dict[str, float]], generation: Optional[int]) -> Dict[str, Any]:
    # the service answers 400 when either field is absent
    if weights is None or generation is None:
        raise WeightStoreError("payload needs both 'weights' and 'generation'")
    return {"weights": dict(weights), "generation": generation}


class WeightStore(ABC):
    @abstractmethod
    def get_weights(self) -> WeightRecord:
        ...

    @abstractmethod
    def set_weights(self, weights: Dict[str, float], generation: int) -> None:
        ...


class MemoryWeightStore(WeightStore):
    def __init__(self, record: Optional[WeightRecord] = None):
        self.record = record or default_record()
        self.writes = 0

    def get_weights(self) -> WeightRecord:
        return WeightRecord(dict(self.record.weights), self.record.generation)

    def set_weights(self, weights, generation):
        self.record = parse_record(encode_record(weights, generation))
        self.writes += 1


class JsonWeightStore(WeightStore):
    def __init__(self, path: str = WEIGHTS_FILE):
        self.path = path
        if not os.path.exists(path):
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            record = default_record()
            self._write(encode_record(record.weights, record.generation))

    def _write(self, payload: Dict[str, Any]) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            raise WeightStoreError(f"could not write {self.path}: {e}") from e

    def get_weights(self) -> WeightRecord:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        except (OSError, ValueError) as e:
            raise WeightStoreError(f"could not read {self.path}: {e}") from e
        return parse_record(data)

    def set_weights(self, weights, generation):
        payload = encode_record(weights, generation)
        parse_record(payload)
        self._write(payload)
        logger.info("[Store] Weights saved to %s", os.path.abspath(self.path))


class HttpWeightStore(WeightStore):
    """Talks to GET/POST {base_url}/api/weights."""

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.url = base_url.rstrip("/") + "/api/weights"
        self.timeout = timeout

    def _request(self, request: urllib.request.Request) -> Any:
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as e:
            raise WeightStoreError(f"{request.get_method()} {self.url} -> HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise WeightStoreError(f"{request.get_method()} {self.url} failed: {e}") from e
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WeightStoreError(f"bad JSON from {self.url}: {e}") from e

    def get_weights(self) -> WeightRecord:
        return parse_record(self._request(urllib.request.Request(self.url, method="GET")))

    def set_weights(self, weights, generation):
        data = json.dumps(encode_record(weights, generation)).encode("utf-8")
        request = urllib.request.Request(
            self.url, data=data, method="POST", headers={"Content-Type": "application/json"}
        )
        reply = self._request(request)
        if not isinstance(reply, dict) or not reply.get("success"):
            raise WeightStoreError(f"store rejected weights: {reply!r}")


def _with_retry(action: Callable[[], Any], what: str, retries: int, backoff: float,
                sleep: Callable[[float], None], deadline: Optional[float] = None,
                clock: Callable[[], float] = time.monotonic) -> Result:
    """
    Run action up to retries + 1 times with exponential backoff between attempts.
    With a deadline (in clock() time), no wait or new attempt is started past it.
    """
    if retries < 0:
        raise ValueError("retries must be >= 0")
    last_error = None
    for attempt in range(retries + 1):
        try:
            return Ok(action())
        except WeightStoreError as e:
            last_error = e
            logger.warning("[Store] %s failed (attempt %d/%d): %s", what, attempt + 1, retries + 1, e)
            if attempt < retries:
                delay = backoff * (2 ** attempt)
                if deadline is not None and clock() + delay >= deadline:
                    logger.warning("[Store] %s: out of time, giving up", what)
                    break
                sleep(delay)
    return Err(str(last_error))


def fetch_weights(store: WeightStore, retries: int = 2, backoff: float = 0.5,
                  sleep: Callable[[float], None] = time.sleep,
                  deadline: Optional[float] = None,
                  clock: Callable[[], float] = time.monotonic) -> Result:
    return _with_retry(store.get_weights, "load", retries, backoff, sleep, deadline, clock)


def save_weights(store: WeightStore, weights: Dict[str, float], generation: int,
                 retries: int = 2, backoff: float = 0.5,
                 sleep: Callable[[float], None] = time.sleep) -> Result:
    def action():
        store.set_weights(weights, generation)
        return WeightRecord(dict(weights), generation)
    return _with_retry(action, "save", retries, backoff, sleep)


def with_default(result: Result) -> WeightRecord:
    """The loaded record on Ok, the built-in defaults at generation 0 on Err."""
    if isinstance(result, Ok):
        return result.value
    logger.info("[Store] Using default weights (%s)", result.reason)
    return default_record()
