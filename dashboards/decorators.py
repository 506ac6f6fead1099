# dashboards/decorators.py

from __future__ import annotations

import hmac
import logging
from functools import wraps

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _token_from_request(request) -> str:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return (request.headers.get("X-Ops-Token") or request.GET.get("token") or "").strip()


def shared_secret_required(setting_name: str):
    """
    Gate a view behind a shared secret from settings.

    503 when the secret is not configured, 401 when the request's token
    (Authorization: Bearer, X-Ops-Token or ?token=) does not match.
    """

    def decorator(view_func):
        @wraps(view_func)
        def _wrapped(request, *args, **kwargs):
            expected = (getattr(settings, setting_name, "") or "").strip()
            if not expected:
                return JsonResponse({"error": f"{setting_name} is not configured"}, status=503)

            supplied = _token_from_request(request)
            if not supplied or not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
                logger.warning("rejected %s token path=%s", setting_name, request.path)
                return JsonResponse({"error": "unauthorized"}, status=401)

            return view_func(request, *args, **kwargs)

        return _wrapped

    return decorator


ops_token_required = shared_secret_required("OPS_TOKEN")
export_token_required = shared_secret_required("EXPORT_TOKEN")
