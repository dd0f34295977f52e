"""
Lead routes — list, create, update and soft-delete leads, read score insights.
"""
import logging
from flask import Blueprint, jsonify, request
from sqlalchemy.orm.exc import StaleDataError

from crmscore.database import get_session
from crmscore.services.lifecycle import (
    RecordNotFound,
    ValidationError,
    create_lead,
    delete_lead,
    get_lead,
    list_leads,
    update_lead,
    update_lead_status,
)

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object')
    return data


@bp.route('/api/leads')
def index():
    """Live leads filtered by status, source, owner and minimum score."""
    session = get_session()
    try:
        leads, pagination = list_leads(
            session,
            status=request.args.get('status'),
            source=request.args.get('source'),
            assigned_to=request.args.get('assigned_to'),
            min_score=request.args.get('min_score', type=int),
            page=request.args.get('page', 1, type=int),
            limit=request.args.get('limit', 20, type=int),
        )
        return jsonify({
            'leads': [lead.to_dict() for lead in leads],
            'pagination': pagination,
        })
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.exception("List leads failed")
        return jsonify({'error': 'Failed to fetch leads'}), 500
    finally:
        session.close()


@bp.route('/api/leads', methods=['POST'])
def create():
    session = get_session()
    try:
        lead = create_lead(session, _payload())
        return jsonify({'lead': lead.to_dict()}), 201
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception:
        session.rollback()
        logger.exception("Create lead failed")
        return jsonify({'error': 'Failed to create lead'}), 500
    finally:
        session.close()


@bp.route('/api/leads/<int:lead_id>')
def detail(lead_id):
    session = get_session()
    try:
        lead = get_lead(session, lead_id)
        data = lead.to_dict()
        data['score_history'] = lead.score_history or []
        return jsonify({'lead': data})
    except RecordNotFound:
        return jsonify({'error': 'Lead not found'}), 404
    finally:
        session.close()


@bp.route('/api/leads/<int:lead_id>', methods=['PATCH'])
def update(lead_id):
    session = get_session()
    try:
        lead = update_lead(session, lead_id, _payload())
        return jsonify({'lead': lead.to_dict()})
    except RecordNotFound:
        return jsonify({'error': 'Lead not found'}), 404
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Update lead %s failed", lead_id)
        return jsonify({'error': 'Failed to update lead'}), 500
    finally:
        session.close()


@bp.route('/api/leads/<int:lead_id>', methods=['DELETE'])
def delete(lead_id):
    session = get_session()
    try:
        delete_lead(session, lead_id)
        return jsonify({'message': 'Lead deleted'})
    except RecordNotFound:
        return jsonify({'error': 'Lead not found'}), 404
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Delete lead %s failed", lead_id)
        return jsonify({'error': 'Failed to delete lead'}), 500
    finally:
        session.close()


@bp.route('/api/leads/<int:lead_id>/status', methods=['PATCH'])
def update_status(lead_id):
    session = get_session()
    try:
        status = _payload().get('status')
        if not status:
            raise ValidationError('status is required')
        lead = update_lead_status(session, lead_id, status)
        return jsonify({'lead': lead.to_dict()})
    except RecordNotFound:
        return jsonify({'error': 'Lead not found'}), 404
    except ValidationError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except StaleDataError:
        session.rollback()
        return jsonify({'error': 'Record was modified concurrently, retry'}), 409
    except Exception:
        session.rollback()
        logger.exception("Status update on lead %s failed", lead_id)
        return jsonify({'error': 'Failed to update lead status'}), 500
    finally:
        session.close()


@bp.route('/api/leads/<int:lead_id>/ai-insights')
def insights(lead_id):
    session = get_session()
    try:
        return jsonify({'insights': get_lead(session, lead_id).insights()})
    except RecordNotFound:
        return jsonify({'error': 'Lead not found'}), 404
    finally:
        session.close()
