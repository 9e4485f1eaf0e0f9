from streamalert.main import run

run()
