from fastapi import FastAPI
from dotenv import load_dotenv

from nodectl.api.middleware import AuthMiddleware
from nodectl.api.routes import nodes

load_dotenv()
app = FastAPI(title="nodectl")
app.add_middleware(AuthMiddleware)

app.include_router(nodes.router)
