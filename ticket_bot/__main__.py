from ticket_bot.main import run


run()
