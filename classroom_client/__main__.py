from classroom_client.cli import app

app(prog_name="classroom")
