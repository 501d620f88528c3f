from app.policysignoff import create_app

app = create_app()
