from martpos import create_app

app = create_app()
