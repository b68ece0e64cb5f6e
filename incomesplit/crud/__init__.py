# incomesplit/crud/__init__.py
from . import crud_user
from . import crud_category
from . import crud_transaction
from . import crud_tag
from . import crud_income # Зависит от модулей выше, импортируем последним
