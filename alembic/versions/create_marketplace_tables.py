from alembic import op

revision = "create_marketplace_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            email VARCHAR(255) NOT NULL UNIQUE,
            role VARCHAR(20) NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            company VARCHAR(255),
            position VARCHAR(255),
            phone VARCHAR(50),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);

        CREATE TABLE IF NOT EXISTS proposals (
            id SERIAL PRIMARY KEY,
            seller_id INTEGER NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            title VARCHAR(100) NOT NULL DEFAULT '',
            industry VARCHAR(50),
            company_name VARCHAR(100),
            summary TEXT,
            description TEXT,
            target_market TEXT,
            investment_amount NUMERIC(18, 2),
            deal_type VARCHAR(30),
            tags JSONB,
            status VARCHAR(20) NOT NULL DEFAULT 'draft',
            reviewer_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            reviewed_at TIMESTAMPTZ,
            review_comment TEXT,
            review_action VARCHAR(20),
            is_public BOOLEAN NOT NULL DEFAULT FALSE,
            allowed_buyer_ids JSONB,
            visibility_snapshot JSONB,
            view_count INTEGER NOT NULL DEFAULT 0,
            interest_count INTEGER NOT NULL DEFAULT 0,
            download_count INTEGER NOT NULL DEFAULT 0,
            delete_requested_at TIMESTAMPTZ,
            delete_reason VARCHAR(500),
            delete_approved_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
            deleted_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            submitted_at TIMESTAMPTZ,
            approved_at TIMESTAMPTZ,
            rejected_at TIMESTAMPTZ,
            published_at TIMESTAMPTZ,
            archived_at TIMESTAMPTZ,
            version INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_proposals_seller_id ON proposals(seller_id);
        CREATE INDEX IF NOT EXISTS idx_proposals_status ON proposals(status);
        CREATE INDEX IF NOT EXISTS idx_proposals_industry ON proposals(industry);

        CREATE TABLE IF NOT EXISTS submissions (
            id SERIAL PRIMARY KEY,
            proposal_id INTEGER NOT NULL REFERENCES proposals(id) ON DELETE RESTRICT,
            buyer_id INTEGER NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            seller_id INTEGER NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            status VARCHAR(30) NOT NULL DEFAULT 'sent',
            interest_level VARCHAR(20),
            feedback_comment TEXT,
            capacity_min NUMERIC(18, 2),
            capacity_max NUMERIC(18, 2),
            capacity_currency VARCHAR(10),
            nda_signed_at TIMESTAMPTZ,
            nda_ip_address VARCHAR(64),
            nda_user_agent VARCHAR(512),
            nda_signature VARCHAR(255),
            nda_version VARCHAR(20),
            contact_requested_at TIMESTAMPTZ,
            contact_request_message VARCHAR(500),
            contact_approved_at TIMESTAMPTZ,
            contact_approved_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
            exchanged_contacts JSONB,
            sent_at TIMESTAMPTZ NOT NULL,
            first_viewed_at TIMESTAMPTZ,
            last_viewed_at TIMESTAMPTZ,
            responded_at TIMESTAMPTZ,
            closed_at TIMESTAMPTZ,
            view_count INTEGER NOT NULL DEFAULT 0,
            download_count INTEGER NOT NULL DEFAULT 0,
            response_time_hours DOUBLE PRECISION,
            engagement_score INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            version INTEGER NOT NULL,
            CONSTRAINT uq_submissions_proposal_buyer UNIQUE (proposal_id, buyer_id)
        );
        CREATE INDEX IF NOT EXISTS idx_submissions_buyer_status ON submissions(buyer_id, status);
        CREATE INDEX IF NOT EXISTS idx_submissions_seller_status ON submissions(seller_id, status);
        CREATE INDEX IF NOT EXISTS idx_submissions_proposal_id ON submissions(proposal_id);

        CREATE TABLE IF NOT EXISTS submission_interactions (
            id SERIAL PRIMARY KEY,
            submission_id INTEGER NOT NULL REFERENCES submissions(id) ON DELETE RESTRICT,
            event_type VARCHAR(30) NOT NULL,
            actor_id INTEGER,
            details JSONB,
            created_at TIMESTAMPTZ NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_submission_interactions_submission ON submission_interactions(submission_id, created_at);

        CREATE TABLE IF NOT EXISTS submission_comments (
            id SERIAL PRIMARY KEY,
            submission_id INTEGER NOT NULL REFERENCES submissions(id) ON DELETE CASCADE,
            author_id INTEGER NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            parent_id INTEGER REFERENCES submission_comments(id) ON DELETE CASCADE,
            comment_type VARCHAR(20) NOT NULL,
            content TEXT NOT NULL,
            requires_response BOOLEAN NOT NULL DEFAULT FALSE,
            is_answered BOOLEAN NOT NULL DEFAULT FALSE,
            is_private BOOLEAN NOT NULL DEFAULT FALSE,
            read_by JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_submission_comments_submission ON submission_comments(submission_id, created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_submission_comments_author ON submission_comments(author_id, created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_submission_comments_parent ON submission_comments(parent_id);

        CREATE TABLE IF NOT EXISTS audit_logs (
            id SERIAL PRIMARY KEY,
            actor_id INTEGER NOT NULL,
            action VARCHAR(40) NOT NULL,
            resource_type VARCHAR(40) NOT NULL,
            resource_id INTEGER,
            details JSONB,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_audit_logs_resource ON audit_logs(resource_type, resource_id);
        CREATE INDEX IF NOT EXISTS idx_audit_logs_actor ON audit_logs(actor_id, created_at DESC);
    """)


def downgrade():
    op.execute("""
        DROP TABLE IF EXISTS audit_logs CASCADE;
        DROP TABLE IF EXISTS submission_comments CASCADE;
        DROP TABLE IF EXISTS submission_interactions CASCADE;
        DROP TABLE IF EXISTS submissions CASCADE;
        DROP TABLE IF EXISTS proposals CASCADE;
        DROP TABLE IF EXISTS users CASCADE;
    """)
