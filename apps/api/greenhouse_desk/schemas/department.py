from pydantic import BaseModel


class DepartmentOut(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class PublicDepartmentOut(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True
