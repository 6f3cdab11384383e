from daypass.core.config import get_settings

settings = get_settings()

# The socket.io wrapper, so dashboards share the API port.
app = "daypass.main:app"
host = settings.BACKEND_HOST
port = settings.BACKEND_PORT
log_level = "debug" if settings.DEBUG else "info"
reload = settings.ENVIRONMENT.lower() == "development"
workers = 1 if settings.DEBUG else 2
proxy_headers = True
