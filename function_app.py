import azure.functions as func

from tvbingefriend_feed_service.blueprints.feeds_bp import bp as feeds_bp

app = func.FunctionApp()

app.register_blueprint(feeds_bp)
