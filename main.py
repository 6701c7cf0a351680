import os

from vault_ssh.app import create_app
app = create_app()

if __name__ == "__main__":
    # Optional: run directly with `python main.py` to avoid uvicorn target syntax.
    import uvicorn

    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "8090"))
    reload = os.environ.get("RELOAD", "false").lower() in ("1", "true", "yes")
    log_level_env = os.environ.get("LOG_LEVEL", "info")
    try:
        # Allow numeric `logging` levels while normalizing strings for uvicorn
        log_level = int(log_level_env)
    except ValueError:
        log_level = log_level_env.lower()

    uvicorn.run("main:app", host=host, port=port, reload=reload, log_level=log_level)
