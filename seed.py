from roombook import create_app, db
from roombook.models import Booking, BookingCategory, Building, Feature, Room, User, seed_lookups
from werkzeug.security import generate_password_hash

app = create_app()

with app.app_context():
    db.create_all()

    created = seed_lookups(db.session)
    print(f"Lookup tables seeded ({created} new rows)")

    # Create Admin
    if not User.query.filter_by(username='admin').first():
        admin = User(
            username='admin',
            email='admin@workspace.com',
            password_hash=generate_password_hash('password', method='pbkdf2:sha256'),
            role='admin'
        )
        db.session.add(admin)
        print("Admin created (admin/password)")

    for name in ('Meeting', 'Workshop', 'Interview', 'Training'):
        if not BookingCategory.query.filter_by(name=name).first():
            db.session.add(BookingCategory(name=name))

    hq = Building.query.filter_by(name='HQ').first()
    if not hq:
        hq = Building(name='HQ', address='1 Main Street')
        db.session.add(hq)

    features = {}
    for name in ('tv', 'projector', 'whiteboard', 'sound_system', 'stage', 'desk'):
        features[name] = Feature.query.filter_by(name=name).first() or Feature(name=name)

    # Create Rooms
    rooms_data = [
        {"name": "Salle Alpha", "capacity": 4, "features": ["tv"]},
        {"name": "Salle Beta", "capacity": 10, "features": ["projector", "whiteboard"]},
        {"name": "Auditorium", "capacity": 50, "features": ["sound_system", "stage"]},
        {"name": "Focus Room 1", "capacity": 1, "features": ["desk"]}
    ]

    for r_data in rooms_data:
        if not Room.query.filter_by(name=r_data['name']).first():
            room = Room(
                name=r_data['name'],
                capacity=r_data['capacity'],
                building=hq,
                features=[features[f] for f in r_data['features']],
            )
            db.session.add(room)
            print(f"Room {room.name} created.")

    db.session.commit()
    app.extensions['roombook'].lookups.load()
    print(f"Database seeded successfully ({Booking.query.count()} existing bookings).")
