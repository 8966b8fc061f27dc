# =============================================================================
# WS Connector -- Wire Protocol Codec
# =============================================================================
#
# Outgoing (client -> server):
#   {"info": {"action", "request", "group", "packageID"}, "data"}
#
# Incoming (server -> client):
#   {"info": {"action", "request", "group", "packageID"}, "error", "response"}
#
# Text frames carry UTF-8 JSON. Binary frames are decoded as UTF-8 first.
# =============================================================================

from __future__ import annotations

import json

from typing import Any

from .constants import MAX_MESSAGE_SIZE
from .errors import WSCProtocolError
from .types import Action, Package, PackageInfo, PackageResponse

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


class PackageCodec:
    """Encode outbound packages and decode inbound responses.

    ``decode`` raises :class:`~ws_connector.errors.WSCProtocolError` for
    anything that is not a well-formed response envelope; the caller
    decides how to report it.
    """

    def encode(self, package: Package) -> str:
        info = package.info
        return _json_dumps(
            {
                "info": {
                    "action": info.action.value,
                    "request": info.request,
                    "group": info.group,
                    "packageID": info.package_id,
                },
                "data": package.data,
            }
        )

    def decode(self, data: str | bytes) -> PackageResponse:
        if isinstance(data, str):
            size = len(data.encode("utf-8", "surrogatepass"))
        else:
            size = len(data)
        if size > MAX_MESSAGE_SIZE:
            raise WSCProtocolError(f"Message exceeds max size ({size} bytes)")

        if isinstance(data, (bytes, bytearray)):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise WSCProtocolError("Binary frame is not valid UTF-8") from exc

        try:
            parsed = _json_loads(data)
        except (json.JSONDecodeError, ValueError) as exc:
            raise WSCProtocolError(f"Failed to parse JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            raise WSCProtocolError("Response is not a JSON object")
        raw_info = parsed.get("info")
        if not isinstance(raw_info, dict):
            raise WSCProtocolError("Response has no 'info' envelope")

        return PackageResponse(
            info=self._parse_info(raw_info),
            error=parsed.get("error"),
            response=parsed.get("response"),
        )

    # -- Helpers ---------------------------------------------------------------

    def _parse_info(self, raw: dict[str, Any]) -> PackageInfo:
        try:
            action = Action(raw.get("action"))
        except ValueError as exc:
            raise WSCProtocolError(f"Unknown action: {raw.get('action')!r}") from exc

        package_id = raw.get("packageID")
        if package_id is not None and (
            isinstance(package_id, bool) or not isinstance(package_id, int)
        ):
            raise WSCProtocolError(f"Invalid packageID: {package_id!r}")

        request = raw.get("request")
        if request is not None and (
            isinstance(request, bool) or not isinstance(request, (str, int))
        ):
            raise WSCProtocolError(f"Invalid request name: {request!r}")

        group = raw.get("group")
        if group is not None and not isinstance(group, str):
            raise WSCProtocolError(f"Invalid group name: {group!r}")

        return PackageInfo(
            action=action,
            request=request,
            group=group,
            package_id=package_id,
        )
