from rke2boot.cli import app

app(prog_name="rke2boot")
