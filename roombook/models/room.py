from roombook.extensions import db

room_features = db.Table(
    'room_features',
    db.Column('room_id', db.Integer, db.ForeignKey('rooms.id', ondelete='CASCADE'), primary_key=True),
    db.Column('feature_id', db.Integer, db.ForeignKey('features.id', ondelete='CASCADE'), primary_key=True),
)


class Building(db.Model):
    __tablename__ = 'buildings'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False)
    address = db.Column(db.String(255))

    rooms = db.relationship('Room', back_populates='building', lazy=True)


class Feature(db.Model):
    __tablename__ = 'features'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)  # e.g. projector, whiteboard


class Room(db.Model):
    __tablename__ = 'rooms'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=1)
    building_id = db.Column(db.Integer, db.ForeignKey('buildings.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True)

    building = db.relationship('Building', back_populates='rooms')
    features = db.relationship('Feature', secondary=room_features, lazy='selectin', order_by='Feature.name')

    @property
    def display_name(self):
        if self.building is not None:
            return f"{self.name}, {self.building.name}"
        return self.name

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'capacity': self.capacity,
            'building': self.building.name if self.building else None,
            'features': [f.name for f in self.features],
            'is_active': self.is_active
        }
