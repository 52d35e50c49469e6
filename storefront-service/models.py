from pydantic import BaseModel, confloat, constr

class Product(BaseModel):
    id: constr(min_length=1)  # Choisi par l'opérateur, immuable
    name: constr(min_length=1)
    price: confloat(allow_inf_nan=False)  # Positif attendu, non vérifié ici
    quantity: int

    class Config:
        from_attributes = True
