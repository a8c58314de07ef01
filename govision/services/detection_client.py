# govision/services/detection_client.py
import logging
import math
from typing import Any, Dict, List, Optional

import requests

from govision.errors import (
    DetectionRejectedError,
    MalformedResponseError,
    RetryableDetectionError,
)
from govision.models.domain import Prediction

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://detect.roboflow.com"
DEFAULT_TIMEOUT = 30.0


# ---------------------------
# Response parsing
# ---------------------------

def _as_number(raw: Dict[str, Any], key: str) -> float:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponseError(f"prediction field '{key}' is not a number: {value!r}")
    try:
        number = float(value)
    except OverflowError:
        raise MalformedResponseError(f"prediction field '{key}' is out of range: {value!r}") from None
    if not math.isfinite(number):
        raise MalformedResponseError(f"prediction field '{key}' is not finite: {value!r}")
    return number


def _parse_prediction(raw: Any) -> Prediction:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"prediction is not an object: {raw!r}")

    x, y = _as_number(raw, "x"), _as_number(raw, "y")
    width, height = _as_number(raw, "width"), _as_number(raw, "height")
    confidence = _as_number(raw, "confidence")
    label = raw.get("class")
    class_id = raw.get("class_id")

    if not isinstance(label, str):
        raise MalformedResponseError(f"prediction field 'class' is not a string: {label!r}")
    if isinstance(class_id, bool) or not isinstance(class_id, int):
        raise MalformedResponseError(f"prediction field 'class_id' is not an integer: {class_id!r}")
    if not 0.0 <= confidence <= 1.0:
        raise MalformedResponseError(f"confidence out of range [0, 1]: {confidence}")
    if min(x, y, width, height) < 0:
        raise MalformedResponseError(f"negative bounding box: {(x, y, width, height)}")

    return Prediction(
        x=x,
        y=y,
        width=width,
        height=height,
        confidence=confidence,
        class_name=label,
        class_id=class_id,
    )


def parse_predictions(data: Any) -> List[Prediction]:
    """
    Extract predictions from a Roboflow response.

    Accepted shapes:
      - workflows: {"outputs": [{"count_objects": n, "predictions": {"predictions": [...]}}]}
      - hosted model: {"predictions": [...]}
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(f"response is not a JSON object: {data!r}")

    if "outputs" in data:
        outputs = data["outputs"]
        if not isinstance(outputs, list):
            raise MalformedResponseError("'outputs' is not a list")
        raw_items: List[Any] = []
        for output in outputs:
            block = output.get("predictions") if isinstance(output, dict) else None
            items = block.get("predictions") if isinstance(block, dict) else None
            if not isinstance(items, list):
                raise MalformedResponseError(f"output without a predictions list: {output!r}")
            raw_items.extend(items)
    elif isinstance(data.get("predictions"), list):
        raw_items = data["predictions"]
    else:
        raise MalformedResponseError(f"unrecognised response shape: {sorted(data)}")

    return [_parse_prediction(item) for item in raw_items]


# ---------------------------
# HTTP client
# ---------------------------

class RoboflowClient:
    """
    Roboflow Workflows inference over HTTP.

    One POST per ``detect`` call. Failures are classified, never retried here:
    network errors, timeouts and 5xx raise ``RetryableDetectionError``; other
    non-2xx statuses raise ``DetectionRejectedError``; a body that cannot be
    turned into predictions raises ``MalformedResponseError``.
    """

    def __init__(
        self,
        api_key: str,
        workspace_id: str,
        workflow_id: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.workspace_id = workspace_id
        self.workflow_id = workflow_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/infer/workflows/{self.workspace_id}/{self.workflow_id}"

    def detect(self, image_url: str, timeout: Optional[float] = None) -> List[Prediction]:
        logger.info("Sending image URL to Roboflow: %s", image_url)
        body = {
            "api_key": self.api_key,
            "inputs": {"image": {"type": "url", "value": image_url}},
        }

        try:
            resp = self.session.post(self.endpoint, json=body, timeout=timeout or self.timeout)
        except requests.RequestException as exc:
            raise RetryableDetectionError(f"request to roboflow failed: {exc}") from exc

        if resp.status_code >= 500:
            raise RetryableDetectionError(
                f"roboflow returned status {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        if not 200 <= resp.status_code < 300:
            raise DetectionRejectedError(resp.status_code, resp.text)

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError(f"failed to decode roboflow response: {exc}") from exc

        predictions = parse_predictions(data)
        logger.info("Inference completed. %d prediction(s) returned.", len(predictions))
        return predictions

    def close(self) -> None:
        self.session.close()
