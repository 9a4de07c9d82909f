from log_gateway.main import run

run()
