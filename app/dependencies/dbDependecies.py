from fastapi import Depends
from typing import Annotated
from app.database.transaction import UnitOfWork, get_unit_of_work

# Unidad de trabajo para operaciones que escriben en varias tablas
uow_dependency = Annotated[UnitOfWork, Depends(get_unit_of_work)]
