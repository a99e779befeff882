from expense_sync.core.database import Base, engine
from fastapi import FastAPI
from expense_sync.models import staging_item, sync_state  # noqa: F401 (register tables)
from expense_sync.routes.sync import sync_router
from expense_sync.routes.staging import staging_router
from expense_sync.routes.sms import sms_router


app = FastAPI(title="Expense Sync API", version="1.0.0")

Base.metadata.create_all(bind=engine)

# Include all routers
app.include_router(sync_router)
app.include_router(staging_router)
app.include_router(sms_router)


@app.get("/")
def root():
    return {"message": "Expense Sync API is running"}
