# run.py
import os
import sys

from gunicorn.app.base import BaseApplication
from gunicorn.util import import_app


class SyncServer(BaseApplication):
    def __init__(self, app_uri, options=None):
        self.app_uri = app_uri
        self.options = options or {}
        super().__init__()

    def load_config(self):
        for key, value in self.options.items():
            if key in self.cfg.settings and value is not None:
                self.cfg.set(key.lower(), value)

    def load(self):
        return import_app(self.app_uri)


def main():
    sys.path.insert(0, os.getcwd())

    options = {
        "bind": os.getenv("BIND", "0.0.0.0:8000"),
        # One worker: parallel batches would compete for the same channels
        "workers": 1,
        "worker_class": "uvicorn.workers.UvicornWorker",
        "proc_name": "tgsync",
    }

    SyncServer("tgsync.main:app", options).run()


if __name__ == "__main__":
    main()
