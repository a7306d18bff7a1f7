from ccswitch.cli import app

app()
