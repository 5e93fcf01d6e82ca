from fastapi import FastAPI

from function_streamer.asgi import asgi_handler
from function_streamer.routes.stream_test import router as stream_test_router
from function_streamer.wrapper import lambda_entrypoint

app = FastAPI(title="Streamed Function Demo")
app.include_router(stream_test_router, prefix="/api")

# Serve the ASGI app from a function, relaying its streamed response
_streaming_handler = lambda_entrypoint(asgi_handler(app, base_path="/.netlify/functions/lambda_function"))


def lambda_handler(event, context):
    return _streaming_handler(event, context)
