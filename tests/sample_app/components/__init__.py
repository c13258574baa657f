from sample_app.topics import PaymentsTopic


class OrderTable:
    @PaymentsTopic()
    def approve(self, order_id):
        return order_id
