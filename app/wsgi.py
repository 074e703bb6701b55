from app.fincrm import create_app

app = create_app()
