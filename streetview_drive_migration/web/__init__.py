"""Flask-SocketIO web shell."""
