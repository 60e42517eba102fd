"""
Device Detection — Layered, best-effort identification of the applicant's phone.

Layers, first non-empty result wins:
  1. fingerprint vendor API (51Degrees cloud)       confidence 95
  2. high-entropy client hints (model)              confidence 75
  3. low-entropy client hints (platform only)       confidence 40
  4. user-agent pattern matching                    confidence 60-80
"""
import re
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel

from app.config import get_settings
from app.errors import UpstreamUnavailable
from app.utils.logger import get_logger

logger = get_logger("device_detection")

UNKNOWN = "unknown"

CLIENT_HINT_HEADERS = (
    "sec-ch-ua",
    "sec-ch-ua-mobile",
    "sec-ch-ua-platform",
    "sec-ch-ua-model",
    "sec-ch-ua-platform-version",
    "sec-ch-ua-full-version-list",
)


class DetectedDevice(BaseModel):
    model: str
    vendor: str
    source: str
    confidence: int
    is_mobile: bool
    platform: Optional[str] = None

    @property
    def identified(self) -> bool:
        return bool(self.model) and self.model != UNKNOWN


def _strip_quotes(value: Optional[str]) -> str:
    return (value or "").strip().strip('"').strip()


def _is_mobile_ua(user_agent: str) -> bool:
    return bool(re.search(r"Mobi|Android|iPhone|iPod", user_agent or ""))


# ─── Layer 1: fingerprint vendor ───

def detect_with_vendor(headers: Mapping[str, str]) -> Optional[DetectedDevice]:
    settings = get_settings()
    if not settings.FIFTY_ONE_DEGREES_KEY:
        return None

    params = {"user-agent": headers.get("user-agent", "")}
    for name in CLIENT_HINT_HEADERS:
        if headers.get(name):
            params[name] = headers[name]

    url = f"{settings.FIFTY_ONE_DEGREES_URL.rstrip('/')}/{settings.FIFTY_ONE_DEGREES_KEY}.json"
    try:
        resp = httpx.get(url, params=params, timeout=settings.HTTP_TIMEOUT_SECONDS)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Fingerprint vendor unavailable, falling back: %s", e)
        raise UpstreamUnavailable(
            "Device detection service unavailable",
            reason="detection_unavailable",
            details={"provider": "51degrees"},
        )

    device = data.get("device") or {}
    model = device.get("hardwaremodel") or device.get("model") or ""
    if not model or model.lower() == UNKNOWN:
        return None

    is_mobile = device.get("ismobile")
    return DetectedDevice(
        model=model,
        vendor=device.get("hardwarevendor") or device.get("vendor") or UNKNOWN,
        source="51degrees",
        confidence=95,
        is_mobile=bool(is_mobile) if is_mobile is not None else _is_mobile_ua(headers.get("user-agent", "")),
        platform=device.get("platformname"),
    )


# ─── Layers 2 & 3: client hints ───

def detect_from_high_entropy(hints: Mapping[str, object], headers: Mapping[str, str]) -> Optional[DetectedDevice]:
    model = _strip_quotes(hints.get("model") or headers.get("sec-ch-ua-model"))
    if not model:
        return None
    platform = _strip_quotes(hints.get("platform") or headers.get("sec-ch-ua-platform")) or None
    return DetectedDevice(
        model=model,
        vendor=platform or UNKNOWN,
        source="client_hints_high",
        confidence=75,
        is_mobile=_hint_mobile(hints, headers),
        platform=platform,
    )


def detect_from_low_entropy(hints: Mapping[str, object], headers: Mapping[str, str]) -> Optional[DetectedDevice]:
    platform = _strip_quotes(hints.get("platform") or headers.get("sec-ch-ua-platform"))
    if platform.lower() != "ios":
        return None
    return DetectedDevice(
        model="iPhone",
        vendor="Apple",
        source="client_hints_low",
        confidence=40,
        is_mobile=True,
        platform=platform,
    )


def _hint_mobile(hints: Mapping[str, object], headers: Mapping[str, str]) -> bool:
    if hints.get("mobile") is not None:
        return bool(hints["mobile"])
    header = headers.get("sec-ch-ua-mobile")
    if header is not None:
        return header.strip() == "?1"
    return _is_mobile_ua(headers.get("user-agent", ""))


# ─── Layer 4: user agent ───

# (pattern, vendor, confidence, model extractor)
UA_PATTERNS: List[Tuple[re.Pattern, str, int, Callable[[re.Match], str]]] = [
    (re.compile(r"iPhone"), "Apple", 60, lambda m: "iPhone"),
    (re.compile(r"iPad"), "Apple", 60, lambda m: "iPad"),
    (re.compile(r"Macintosh"), "Apple", 60, lambda m: "Mac"),
    (re.compile(r"SM-[A-Z]\d{3,4}[A-Z]?", re.I), "Samsung", 80, lambda m: m.group(0).upper()),
    (re.compile(r"moto\s*[a-z0-9()\s]+", re.I), "Motorola", 70, lambda m: m.group(0).strip()),
    (re.compile(r"motorola\s+edge\s*[a-z0-9\s]+", re.I), "Motorola", 70, lambda m: m.group(0).strip()),
    (re.compile(r"RMX\d{4}", re.I), "Realme", 75, lambda m: m.group(0).upper()),
    (re.compile(r"CPH\d{4}", re.I), "OPPO", 75, lambda m: m.group(0).upper()),
    (re.compile(r"Infinix\s*X\d{3,4}", re.I), "Infinix", 70, lambda m: m.group(0)),
    (re.compile(r"Redmi\s+[A-Za-z0-9]+(\s+[A-Za-z0-9]+)?", re.I), "Xiaomi", 70, lambda m: m.group(0).strip()),
    (re.compile(r"POCO\s+[A-Za-z0-9]+", re.I), "Xiaomi", 70, lambda m: m.group(0).strip()),
    (re.compile(r"\b(2[0-5]\d{3,4}[A-Z]{2,}[A-Z0-9]*)\b", re.I), "Xiaomi", 65, lambda m: m.group(1).upper()),
]


def parse_user_agent(user_agent: str) -> DetectedDevice:
    user_agent = user_agent or ""
    for pattern, vendor, confidence, extract in UA_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            return DetectedDevice(
                model=extract(match),
                vendor=vendor,
                source="user_agent",
                confidence=confidence,
                is_mobile=_is_mobile_ua(user_agent),
                platform="iOS" if vendor == "Apple" else ("Android" if "Android" in user_agent else None),
            )
    return DetectedDevice(
        model=UNKNOWN,
        vendor=UNKNOWN,
        source="user_agent",
        confidence=0,
        is_mobile=_is_mobile_ua(user_agent),
    )


def detect_device(headers: Mapping[str, str], hints: Optional[Mapping[str, object]] = None) -> DetectedDevice:
    """Run the detection layers against request headers and optional client hints.

    Header names are expected lower-cased (Starlette's Headers are case-insensitive).
    A vendor outage only surfaces as UpstreamUnavailable when no other layer
    identifies the device.
    """
    hints = {k: v for k, v in (hints or {}).items() if v is not None}
    headers: Dict[str, str] = {k.lower(): v for k, v in headers.items()}

    vendor_error: Optional[UpstreamUnavailable] = None
    try:
        found = detect_with_vendor(headers)
    except UpstreamUnavailable as e:
        vendor_error, found = e, None
    if found and found.identified:
        return found

    for layer in (detect_from_high_entropy, detect_from_low_entropy):
        found = layer(hints, headers)
        if found and found.identified:
            return found

    found = parse_user_agent(headers.get("user-agent", ""))
    if not found.identified and vendor_error is not None:
        raise vendor_error
    return found
