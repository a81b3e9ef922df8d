from app.impgeo import create_app

app = create_app()
