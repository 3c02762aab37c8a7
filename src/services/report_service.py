# src/services/report_service.py
import io
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import pandas as pd
import pytz
from ..config import Config
from ..models.product import Product
from .authorization import Caller
from .product_service import ProductService

class ReportService:
    """Admin reports over sold listings"""

    def __init__(self, db, product_service: Optional[ProductService] = None):
        self.db = db
        self.product_service = product_service or ProductService(db)
        self.tz = pytz.timezone(Config.TIMEZONE)

    def _local(self, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        if dt.tzinfo is None:
            dt = pytz.utc.localize(dt)
        return dt.astimezone(self.tz).strftime("%Y-%m-%d %H:%M")

    async def get_sold_summary(self, caller: Caller) -> Dict[str, Any]:
        sold = await self.product_service.list_sold(caller)
        return self.summarize(sold)

    @staticmethod
    def summarize(sold: List[Product]) -> Dict[str, Any]:
        categories = Counter(product.listed_product.main_category for product in sold)
        return {
            "total_sold": len(sold),
            "total_revenue": sum((product.price for product in sold), Decimal(0)),
            "by_category": dict(categories.most_common())
        }

    def _rows(self, sold: List[Product]) -> List[Dict[str, Any]]:
        rows = []
        for product in sold:
            listing = product.listed_product
            rows.append({
                "Product ID": str(product.product_id),
                "Title": listing.title,
                "Category": listing.category,
                "Main category": listing.main_category,
                "Price": float(listing.price),
                "MRP": float(listing.mrp) if listing.mrp is not None else None,
                "Discount %": listing.discount_percentage,
                "Seller": product.seller_id,
                "Listed at": self._local(listing.listed_at),
                "Sold at": self._local(product.updated_at),
            })
        return rows

    async def generate_excel_report(self, caller: Caller) -> bytes:
        """Workbook with a summary sheet and one row per sold listing"""
        sold = await self.product_service.list_sold(caller)
        summary = self.summarize(sold)

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
            summary_data = {
                'Metric': ['Items sold', 'Revenue (INR)'],
                'Value': [summary['total_sold'], float(summary['total_revenue'])]
            }
            pd.DataFrame(summary_data).to_excel(writer, sheet_name='Summary', index=False)

            pd.DataFrame(
                list(summary['by_category'].items()),
                columns=['Main category', 'Items sold']
            ).to_excel(writer, sheet_name='Categories', index=False)

            pd.DataFrame(self._rows(sold)).to_excel(writer, sheet_name='Sold items', index=False)

        return output.getvalue()
