"""
Deal routes — list, create, update, stage moves, soft delete, activities, pipeline view.
"""
import logging
from flask import Blueprint, jsonify, request
from sqlalchemy.orm.exc import StaleDataError

from crmscore.database import get_session
from crmscore.services.analytics import pipeline_by_stage
from crmscore.services.lifecycle import (
    RecordNotFound,
    ValidationError,
    add_deal_activity,
    create_deal,
    delete_deal,
    get_deal,
    list_deals,
    update_deal,
    update_deal_stage,
)

logger = logging.getLogger('routes.deals')

bp = Blueprint('deals', __name__)


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object')
    return data


@bp.route('/api/deals')
def index():
    """Live deals filtered by status, stage, owner and value range."""
    session = get_session()
    try:
        deals, pagination = list_deals(
            session,
            status=request.args.get('status'),
            stage=request.args.get('stage'),
            assigned_to=request.args.get('assigned_to'),
            min_value=request.args.get('min_value', type=float),
            max_value=request.args.get('max_value', type=float),
            page=request.args.get('page', 1, type=int),
            limit=request.args.get('limit', 20, type=int),
        )
        return jsonify({
            'deals': [deal.to_dict() for deal in deals],
            'pagination': pagination,
        })
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception("List deals failed")
        return jsonify({'error': 'Failed to fetch deals'}), 500
    finally:
        session.close()


@bp.route('/api/deals', methods=['POST'])
def create():
    session = get_session()
    try:
        deal = create_deal(session, _payload())
        return jsonify({'deal': deal.to_dict()}), 201
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception:
        session.rollback()
        logger.exception("Create deal failed")
        return jsonify({'error': 'Failed to create deal'}), 500
    finally:
        session.close()


@bp.route('/api/deals/pipeline')
def pipeline():
    session = get_session()
    try:
        return jsonify({'stages': pipeline_by_stage(session)})
    except Exception:
        logger.exception("Pipeline query failed")
        return jsonify({'error': 'Failed to fetch pipeline'}), 500
    finally:
        session.close()


@bp.route('/api/deals/<int:deal_id>')
def detail(deal_id):
    session = get_session()
    try:
        return jsonify({'deal': get_deal(session, deal_id).to_dict()})
    except RecordNotFound:
        return jsonify({'error': 'Deal not found'}), 404
    finally:
        session.close()


@bp.route('/api/deals/<int:deal_id>', methods=['PATCH'])
def update(deal_id):
    session = get_session()
    try:
        deal = update_deal(session, deal_id, _payload())
        return jsonify({'deal': deal.to_dict()})
    except RecordNotFound:
        return jsonify({'error': 'Deal not found'}), 404
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Update deal %s failed", deal_id)
        return jsonify({'error': 'Failed to update deal'}), 500
    finally:
        session.close()


@bp.route('/api/deals/<int:deal_id>', methods=['DELETE'])
def delete(deal_id):
    session = get_session()
    try:
        delete_deal(session, deal_id)
        return jsonify({'message': 'Deal deleted'})
    except RecordNotFound:
        return jsonify({'error': 'Deal not found'}), 404
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Delete deal %s failed", deal_id)
        return jsonify({'error': 'Failed to delete deal'}), 500
    finally:
        session.close()


@bp.route('/api/deals/<int:deal_id>/stage', methods=['PATCH'])
def update_stage(deal_id):
    session = get_session()
    try:
        stage = _payload().get('stage')
        if not stage:
            raise ValidationError('stage is required')
        deal = update_deal_stage(session, deal_id, stage)
        return jsonify({'deal': deal.to_dict()})
    except RecordNotFound:
        return jsonify({'error': 'Deal not found'}), 404
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Stage change on deal %s failed", deal_id)
        return jsonify({'error': 'Failed to update stage'}), 500
    finally:
        session.close()


@bp.route('/api/deals/<int:deal_id>/activities', methods=['POST'])
def add_activity(deal_id):
    session = get_session()
    try:
        deal = add_deal_activity(session, deal_id, _payload())
        return jsonify({'deal': deal.to_dict()}), 201
    except RecordNotFound:
        return jsonify({'error': 'Deal not found'}), 404
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Logging activity on deal %s failed", deal_id)
        return jsonify({'error': 'Failed to add activity'}), 500
    finally:
        session.close()
