import uuid

from .logging import bind_request_context, clear_request_context


class RequestIdMiddleware:
    """Tag each request with an id for log correlation.

    An incoming ``X-Request-ID`` header is reused when present; the id is
    echoed back on the response.  The actor id is bound later, once DRF
    has authenticated the request (see ``records.decorators``).
    """
    HEADER = 'HTTP_X_REQUEST_ID'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = (request.META.get(self.HEADER) or '')[:64] or uuid.uuid4().hex
        request.request_id = request_id
        bind_request_context(request_id=request_id)
        try:
            response = self.get_response(request)
        finally:
            clear_request_context()
        response['X-Request-ID'] = request_id
        return response
