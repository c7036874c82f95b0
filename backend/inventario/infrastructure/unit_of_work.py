from contextlib import contextmanager
from sqlalchemy.orm import Session
from .repositories import UserRepository, ProductRepository, LoteRepository, HistoryRepository

class UnitOfWork:
    def __init__(self, db: Session):
        self.db: Session = db
        self.users = UserRepository(self.db)
        self.products = ProductRepository(self.db)
        self.lotes = LoteRepository(self.db)
        self.history = HistoryRepository(self.db)

    def commit(self): self.db.commit()
    def rollback(self): self.db.rollback()
    def close(self): self.db.close()

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.commit()
        except BaseException:
            self.rollback()
            raise
        finally:
            self.close()
