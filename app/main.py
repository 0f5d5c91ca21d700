from dotenv import load_dotenv

load_dotenv()

from server import server  # noqa: E402

# ASGI entry point: uvicorn main:server_app
server_app = server.handler
