# asset_tracker/models/category.py
from asset_tracker import db
from asset_tracker.clock import utcnow


class Category(db.Model):
    """Reference data supplying the depreciation inputs for assets"""
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(30), unique=True, nullable=False)
    description = db.Column(db.Text)
    depreciation_rate = db.Column(db.Numeric(5, 2))  # percent per year
    useful_life_years = db.Column(db.Integer)
    salvage_value = db.Column(db.Numeric(12, 2))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    assets = db.relationship('Asset', backref='category', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'description': self.description,
            'depreciation_rate': str(self.depreciation_rate) if self.depreciation_rate is not None else None,
            'useful_life_years': self.useful_life_years,
            'salvage_value': str(self.salvage_value) if self.salvage_value is not None else None,
        }

    def __repr__(self):
        return f"Category('{self.code}', '{self.name}')"
