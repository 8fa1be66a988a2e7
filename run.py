from app import create_app, db
from app.models import BonusPrediction, Event, Fight, Payment, Prediction, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Event": Event,
        "Fight": Fight,
        "Prediction": Prediction,
        "BonusPrediction": BonusPrediction,
        "Payment": Payment,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
