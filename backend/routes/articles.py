"""
OXA CRM - Routes Articles (catalogue)

Les articles alimentent les lignes de devis par copie; modifier un article
ne modifie aucun devis existant.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from models.article import ArticleCreate, ArticleUpdate
from services.persistence import Store, get_store

router = APIRouter(prefix="/articles", tags=["Articles"])


@router.get("")
async def list_articles(
    type: Optional[str] = Query(None),
    active_only: bool = Query(True, description="Articles actifs uniquement"),
    store: Store = Depends(get_store),
):
    query = {}
    if type:
        query["type"] = type
    if active_only:
        query["actif"] = True
    articles = await store.fetch_all("articles", query, sort=("nom", 1))
    return {"articles": articles, "count": len(articles)}


@router.get("/{article_id}")
async def get_article(article_id: str, store: Store = Depends(get_store)):
    return await store.fetch_one("articles", article_id)


@router.post("")
async def create_article(data: ArticleCreate, store: Store = Depends(get_store)):
    article = await store.insert("articles", data.model_dump(mode="json"))
    return {"success": True, "article": article}


@router.put("/{article_id}")
async def update_article(article_id: str, data: ArticleUpdate, store: Store = Depends(get_store)):
    update_data = {k: v for k, v in data.model_dump(mode="json").items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    article = await store.update("articles", article_id, update_data)
    return {"success": True, "article": article}


@router.delete("/{article_id}")
async def delete_article(article_id: str, store: Store = Depends(get_store)):
    await store.delete("articles", article_id)
    return {"success": True}
