import uvicorn

if __name__ == "__main__":
    config = uvicorn.Config(
        "safereturn.api.server:app",
        host="0.0.0.0",
        port=5000,
        log_level="info",
        env_file=".env",
    )
    server = uvicorn.Server(config)
    server.run()
