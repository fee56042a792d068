# Sample resources: authors, publishers and books
# resource_api/examples/library.py

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from resource_api.api.routing import resource_router
from resource_api.controllers.resource_controller import ResourceController
from resource_api.data_access.models import model, resource
from resource_api.data_access.types import PyObjectId, Ref


class AuthorDocument(BaseModel):
    """An author; books reference authors."""
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    born: Optional[datetime] = None
    books_written: int = Field(
        0, json_schema_extra={"validation": {"kind": "Int", "options": {"min": 0}}}
    )


class PublisherDocument(BaseModel):
    name: str
    city: Optional[str] = None
    parent: Optional[PyObjectId] = Ref("Publisher", default=None)


class BookDocument(BaseModel):
    title: str = Field(..., min_length=1)
    author: PyObjectId = Ref("Author")
    contributors: List[PyObjectId] = Ref("Author", default_factory=list)
    publisher: Optional[PyObjectId] = Ref("Publisher", default=None)
    pages: Optional[int] = Field(
        None, json_schema_extra={"validation": {"kind": "Int", "options": {"min": 1}}}
    )
    price: Optional[float] = Field(None, json_schema_extra={"validation": {"kind": "Float"}})
    in_print: bool = True


class EBookDocument(BookDocument):
    file_format: str = "epub"


Author = resource("Author", AuthorDocument)
Publisher = model("Publisher", PublisherDocument)
Book = resource("Book", BookDocument)
EBook = Book.discriminator("EBook", EBookDocument)

author_controller = ResourceController(Author)
book_controller = ResourceController(Book)

router = APIRouter()
router.include_router(resource_router(author_controller), prefix="/authors", tags=["Authors"])
router.include_router(resource_router(book_controller), prefix="/books", tags=["Books"])
