from app.flock import create_app

app = create_app()
