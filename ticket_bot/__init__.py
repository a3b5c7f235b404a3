"""
Discord-бот тикетов поддержки.

Модули:
- config: настройки из .env
- gateway: побочные эффекты в Discord
- handlers: обработчики взаимодействий
- commands: slash-команды
- panels, views, templates: панели, кнопки и тексты
"""

__version__ = "1.0.0"
