# src/shared/__init__.py
"""
Общий код релея.

Модули:
- models: Pydantic-модели геопозиции, подписок и служебных ответов
"""

__all__: list[str] = []
