# This is a simple local server for the events API.
# uvicorn jira_agent_api.fast_api_server:app --reload --port 9000
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from jira_agent_api.api_handler import lambda_handler


def _process_response(lambda_resp: dict[str, Any]) -> Response | JSONResponse:
    """Convert an AWS Lambda-style proxy response into a FastAPI Response."""
    status_code = lambda_resp.get("statusCode", 200)
    content_type = lambda_resp.get("headers", {}).get("Content-Type", "text/plain")
    body = lambda_resp.get("body", "")

    # Handle dict content as JSON
    if isinstance(body, dict):
        return JSONResponse(content=body, status_code=status_code)

    return Response(content=body, status_code=status_code, media_type=content_type)


def _process_request(body: bytes, request: Request) -> Response | JSONResponse:
    """Convert a FastAPI request to a Lambda-style event."""
    event = {
        "body": body,
        "isBase64Encoded": False,
        "headers": dict(request.headers),
        "queryStringParameters": dict(request.query_params),
        "requestContext": {"http": {"method": request.method, "path": request.url.path}},
    }
    # Response is a Lambda-style response. Set a direct HTTP response in FastAPI
    lambda_response = lambda_handler(event, None)
    return _process_response(lambda_response)


app = FastAPI(title="Jira Agent")


# --- route for the Slack Events API ---
@app.post("/slack/events")
async def slack_events(request: Request) -> Response:
    body = await request.body()
    return _process_request(body, request)


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}
