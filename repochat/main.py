# repochat/main.py
# Entry point for `python -m repochat.main`
from repochat.cli import app

if __name__ == "__main__":
    app(prog_name="repochat")
