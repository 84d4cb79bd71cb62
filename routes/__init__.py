def success(results=None, **data):
    """Standard response envelope."""
    body = {"status": "success"}
    if results is not None:
        body["results"] = results
    body["data"] = data
    return body
