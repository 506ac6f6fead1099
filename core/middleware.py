# core/middleware.py
from __future__ import annotations

import re

from django.utils.deprecation import MiddlewareMixin

from .logging_context import clear_context, new_request_id, set_context

# Incoming ids are echoed back in headers and logs; keep them boring.
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


class RequestIDMiddleware(MiddlewareMixin):
    """
    Tags every request with an id for log correlation.

    - request.request_id
    - response header: X-Request-ID
    - threadlocal context read by core.logging_filters
    """

    header_name = "HTTP_X_REQUEST_ID"
    response_header = "X-Request-ID"

    def process_request(self, request):
        incoming = (request.META.get(self.header_name) or "").strip()
        rid = incoming if _SAFE_REQUEST_ID.match(incoming) else new_request_id()
        request.request_id = rid

        user = getattr(request, "user", None)
        user_id = user.id if user is not None and user.is_authenticated else None
        set_context(request_id=rid, user_id=user_id, path=(request.path or ""))

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response[self.response_header] = rid
        clear_context()
        return response

    def process_exception(self, request, exception):
        clear_context()
        return None
