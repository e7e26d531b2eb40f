try:
    from backend.capyrace.server import create_app
except ImportError:  # pragma: no cover
    from capyrace.server import create_app

app, socketio = create_app()
