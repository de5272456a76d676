from minihttpd.server import run

run()
