from function_streamer.routes.stream_test import ticks
from function_streamer.wrapper import lambda_entrypoint


async def stream_ticks(event, res, context, callback):
    res.set_header("content-type", "text/plain; charset=utf-8")
    res.set_header("cache-control", "no-cache, no-transform")
    res.status_code = 200
    async for chunk in ticks():
        if not res.write(chunk):
            await res.drain()


# Function entrypoint. The return value only reports success to the runtime;
# the response body travels over the relay stream.
handler = lambda_entrypoint(stream_ticks)
