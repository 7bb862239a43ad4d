from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Numeric,
    TIMESTAMP,
    Text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from shopquery.core.database import Base

# Read-only mapping of the catalogue tables. Table and column names are the
# lowercase names used in Postgres and in the allowlist registry.


# =========================
# Supplier
# =========================
class Supplier(Base):
    __tablename__ = "suppliers"

    supplierid = Column(Integer, primary_key=True, autoincrement=True)

    suppliername = Column(String, nullable=False)
    contactperson = Column(String)
    phonenumber = Column(String)
    supplieremail = Column(String)
    address = Column(String)
    supplierstatus = Column(String)
    defectreturned = Column(Integer, nullable=True)

    createdat = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updatedat = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    products = relationship("Product", back_populates="supplier")


# =========================
# Product
# =========================
class Product(Base):
    __tablename__ = "products"

    productid = Column(Integer, primary_key=True, autoincrement=True)

    productname = Column(String(150), nullable=False)
    description = Column(Text)
    image_url = Column(String)
    updatedbyuserid = Column(String, nullable=True)

    supplierid = Column(
        Integer,
        ForeignKey("suppliers.supplierid"),
        nullable=False,
        index=True,
    )

    createdat = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updatedat = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    supplier = relationship("Supplier", back_populates="products")
    categories = relationship("ProductCategory", back_populates="product")


# =========================
# ProductCategory (priced variant of a product)
# =========================
class ProductCategory(Base):
    """
    One sellable variant of a product (colour / age size) with its own
    price, cost and stock. A product usually has several of these rows.
    """

    __tablename__ = "productcategory"

    productcategoryid = Column(Integer, primary_key=True, autoincrement=True)

    productid = Column(
        Integer,
        ForeignKey("products.productid"),
        nullable=False,
        index=True,
    )

    price = Column(Numeric(18, 2), nullable=False)
    cost = Column(Numeric(18, 2), nullable=False)
    color = Column(String)
    agesize = Column(String)
    currentstock = Column(Integer, nullable=False, default=0)
    reorderpoint = Column(Integer, nullable=True)
    updatedstock = Column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    product = relationship("Product", back_populates="categories")


# =========================
# ProductEmbedding (VECTOR STORE)
# =========================
class ProductEmbedding(Base):
    """
    Row of the pgvector store. The `embedding vector(768)` column is written by
    the embedding sync job and only ever read through the raw ANN query in
    services/vector_search.py, so it is not mapped here.
    """

    __tablename__ = "product_embeddings"

    product_id = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
