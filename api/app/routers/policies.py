import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models import BackupPolicy
from ..schemas import BackupPolicyIn, BackupPolicyOut, BackupPolicySpecIn

router = APIRouter(prefix="/policies", tags=["policies"])
logger = logging.getLogger(__name__)


def _get_or_404(db: Session, policy_id: int) -> BackupPolicy:
    policy = db.get(BackupPolicy, policy_id)
    if not policy:
        raise HTTPException(status_code=404, detail="Backup policy not found")
    return policy


def _request_reconcile(policy: BackupPolicy) -> None:
    policy.requeue_at = datetime.now(timezone.utc)


@router.get("/", response_model=list[BackupPolicyOut])
def list_policies(namespace: str | None = None, db: Session = Depends(get_db)):
    query = db.query(BackupPolicy)
    if namespace:
        query = query.filter(BackupPolicy.namespace == namespace)
    return query.order_by(BackupPolicy.namespace, BackupPolicy.name).all()


@router.post("/", response_model=BackupPolicyOut, status_code=201)
def create_policy(payload: BackupPolicyIn, db: Session = Depends(get_db)):
    values = payload.model_dump(mode="json")
    values["namespace"] = values["namespace"] or settings.default_namespace
    policy = BackupPolicy(**values, uid=str(uuid.uuid4()), resource_version=0)
    _request_reconcile(policy)
    db.add(policy)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Backup policy already exists") from exc
    db.refresh(policy)
    logger.info("policy_created policy=%s/%s uid=%s", policy.namespace, policy.name, policy.uid)
    return policy


@router.get("/{policy_id}", response_model=BackupPolicyOut)
def read_policy(policy_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, policy_id)


@router.put("/{policy_id}/spec", response_model=BackupPolicyOut)
def update_policy_spec(policy_id: int, payload: BackupPolicySpecIn, db: Session = Depends(get_db)):
    policy = _get_or_404(db, policy_id)
    for key, value in payload.model_dump(mode="json").items():
        setattr(policy, key, value)
    policy.resource_version += 1
    _request_reconcile(policy)
    db.commit()
    db.refresh(policy)
    logger.info("policy_updated policy=%s/%s", policy.namespace, policy.name)
    return policy


@router.post("/{policy_id}/reconcile", status_code=202)
def request_reconcile(policy_id: int, db: Session = Depends(get_db)):
    policy = _get_or_404(db, policy_id)
    _request_reconcile(policy)
    db.commit()
    return {"status": "queued"}


@router.delete("/{policy_id}", status_code=204)
def delete_policy(policy_id: int, db: Session = Depends(get_db)):
    policy = _get_or_404(db, policy_id)
    db.delete(policy)
    db.commit()
    logger.info("policy_deleted policy=%s/%s uid=%s", policy.namespace, policy.name, policy.uid)
