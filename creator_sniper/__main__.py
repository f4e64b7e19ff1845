from creator_sniper.main import run

run()
