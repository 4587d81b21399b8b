"""Run the gateway with ``python -m examsync``."""

import uvicorn

from examsync.config import HOST, PORT

if __name__ == "__main__":
    uvicorn.run("examsync.main:app", host=HOST, port=PORT)
