from function_streamer.app import create_app

# Development relay: uvicorn main:app
app = create_app()
