from rest_framework.views import exception_handler


def api_exception_handler(exc, context):
    """
    DRF exception handler that reports errors as {"error": ..., "details": ...}
    instead of DRF's default {"detail": ...}, so authentication failures look
    like every other API error.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and 'detail' in data:
        payload = {"error": str(data['detail'])}
        extra = {k: v for k, v in data.items() if k != 'detail'}
        if extra:
            payload["details"] = extra
    elif isinstance(data, (dict, list)):
        payload = {"error": "Invalid request data. Please try again.", "details": data}
    else:
        payload = {"error": str(data)}

    response.data = payload
    return response
