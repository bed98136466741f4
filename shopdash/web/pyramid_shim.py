import json
from dataclasses import dataclass

from pyramid.httpexceptions import HTTPFound
from pyramid.request import Request
import zope.interface

from ..exceptions import ValidationError
from ..interfaces import IWebShim


@zope.interface.implementer(IWebShim)
@dataclass
class PyramidWebShim:
    """Shim between the dashboard service and pyramid for web tasks."""

    # The current request.
    request: Request

    def set_cookie(
        self,
        name,
        value,
        httponly=True,
        samesite="lax",
        secure=True,
        max_age=None,
        path="/",
    ):
        self.request.response.set_cookie(
            name,
            value,
            httponly=httponly,
            samesite=samesite,
            secure=secure,
            max_age=max_age,
            path=path,
        )

    def get_cookie(self, name, default=None):
        return self.request.cookies.get(name, default)

    def get_params(self, param_names=None, default=None):
        """Query params as a plain dict, last value wins for repeated keys."""
        if param_names:
            return {name: self.request.GET.get(name, default) for name in param_names}
        return dict(self.request.GET.items())

    def get_request_json_body(self):
        try:
            body = self.request.json_body
        except (ValueError, UnicodeDecodeError) as e:
            raise ValidationError("Request body must be JSON") from e
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        return body

    def response_json(self, payload, status=200):
        """Respond through request.response so cookies set earlier go out too."""
        response = self.request.response
        response.status_int = status
        response.content_type = "application/json"
        response.body = json.dumps(payload).encode("utf8")
        return response

    def redirect_302_url(self, url, with_headers=False):
        """Return a redirect, optionally carrying headers set on request.response."""
        kwargs = {}
        if with_headers:
            kwargs["headers"] = [
                (k, v)
                for (k, v) in self.request.response.headerlist
                if k.lower() == "set-cookie"
            ]
        return HTTPFound(location=url, **kwargs)
